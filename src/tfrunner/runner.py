"""Terraform CLI runner.

Thin wrapper that runs terraform subcommands in a working directory. Only
the steps the VPC workflows need are exposed, so the runner can be swapped
for a test double.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common import run_command
from config import Settings
from tfrunner.install import TerraformInstaller

logger = logging.getLogger(__name__)

# Variables terraform automation sets itself; callers may not override them
PROHIBITED_ENV_VARS = frozenset({
    'TF_APPEND_USER_AGENT',
    'TF_IN_AUTOMATION',
    'TF_INPUT',
    'TF_LOG',
    'TF_LOG_CORE',
    'TF_LOG_PATH',
    'TF_LOG_PROVIDER',
    'TF_REATTACH_PROVIDERS',
    'TF_DISABLE_PLUGIN_TLS',
    'TF_SKIP_PROVIDER_VERIFY',
    'TF_WORKSPACE',
})
VAR_ENV_PREFIX = 'TF_VAR_'


class TerraformError(Exception):
    """A terraform command failed."""

    def __init__(self, message: str, command: Optional[list] = None,
                 returncode: Optional[int] = None, stderr: str = ''):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


@dataclass(frozen=True)
class OutputMeta:
    """One entry of `terraform output -json`; value is raw JSON text."""
    value: str
    type: object = None
    sensitive: bool = False


def _var_args(variables: Optional[dict]) -> list[str]:
    args = []
    for key, value in (variables or {}).items():
        args.extend(['-var', f'{key}={value}'])
    return args


class TerraformRunner:
    """Run terraform steps against one working directory."""

    def __init__(self, working_dir: Path, exec_path: Path,
                 installer: Optional[TerraformInstaller] = None,
                 settings: Optional[Settings] = None):
        self.working_dir = Path(working_dir)
        self.exec_path = Path(exec_path)
        self.installer = installer
        self.settings = settings or Settings()
        self.env: dict[str, str] = {}

    @classmethod
    def new(cls, working_dir, settings: Optional[Settings] = None) -> 'TerraformRunner':
        """Install terraform and return a runner bound to working_dir."""
        working_dir = Path(working_dir)
        if not working_dir.is_dir():
            raise TerraformError(f"Working directory does not exist: {working_dir}")
        settings = settings or Settings()
        installer = TerraformInstaller(settings)
        exec_path = installer.install()
        return cls(working_dir, exec_path, installer=installer, settings=settings)

    def set_env_vars(self, env: dict) -> None:
        """Add environment variables for every subsequent terraform command."""
        for key in env:
            if key in PROHIBITED_ENV_VARS or key.startswith(VAR_ENV_PREFIX):
                raise TerraformError(f"Environment variable {key} is managed by the runner")
        self.env.update(env)

    def _environ(self) -> dict:
        return {**os.environ, **self.env, 'TF_IN_AUTOMATION': '1'}

    def _run(self, step: str, args: list[str], ok_codes: tuple = (0,)) -> tuple[int, str]:
        cmd = [str(self.exec_path), step] + args
        logger.debug(f"terraform {step} in {self.working_dir}")
        rc, out, err = run_command(
            cmd,
            cwd=self.working_dir,
            timeout=self.settings.timeout(step),
            env=self._environ(),
        )
        if rc not in ok_codes:
            raise TerraformError(
                f"terraform {step} exited {rc}: {(err or out).strip()}",
                command=cmd,
                returncode=rc,
                stderr=err,
            )
        return rc, out

    def init(self) -> None:
        self._run('init', ['-no-color', '-input=false'])

    def plan(self, variables: Optional[dict] = None, out: Optional[str] = None) -> bool:
        """Run plan; True when the plan contains changes."""
        args = ['-no-color', '-input=false', '-detailed-exitcode']
        if out:
            args.append(f'-out={out}')
        rc, _ = self._run('plan', args + _var_args(variables), ok_codes=(0, 2))
        return rc == 2

    def apply(self, plan_file: Optional[str] = None, variables: Optional[dict] = None) -> None:
        """Apply a saved plan, or the configuration with variables."""
        args = ['-no-color', '-input=false', '-auto-approve']
        if plan_file:
            args.append(plan_file)
        else:
            args.extend(_var_args(variables))
        self._run('apply', args)

    def destroy(self, variables: Optional[dict] = None) -> None:
        self._run('destroy', ['-no-color', '-input=false', '-auto-approve'] + _var_args(variables))

    def output(self) -> dict[str, OutputMeta]:
        """Return outputs keyed by name."""
        _, out = self._run('output', ['-no-color', '-json'])
        try:
            raw = json.loads(out or '{}')
        except json.JSONDecodeError as e:
            raise TerraformError(f"terraform output returned invalid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise TerraformError("terraform output returned unexpected JSON")

        outputs = {}
        for name, meta in raw.items():
            outputs[name] = OutputMeta(
                value=json.dumps(meta.get('value')),
                type=meta.get('type'),
                sensitive=bool(meta.get('sensitive', False)),
            )
        return outputs

    def uninstall(self) -> None:
        """Remove the terraform binary installed for this runner."""
        if self.installer is not None:
            self.installer.remove()
