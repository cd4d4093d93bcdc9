"""Terraform installation and execution."""

from tfrunner.install import InstallError, TerraformInstaller
from tfrunner.runner import OutputMeta, TerraformError, TerraformRunner

__all__ = [
    'InstallError',
    'TerraformInstaller',
    'OutputMeta',
    'TerraformError',
    'TerraformRunner',
]
