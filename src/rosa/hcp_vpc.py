"""AWS VPC for ROSA hosted control plane (HCP) clusters.

Create runs init -> plan -> apply -> output against the bundled
setup-hcp-vpc.tf template; delete runs init -> destroy. Any failing step
aborts the call with an HCPVPCError. Nothing is retried or rolled back.
"""

import logging
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from config import AwsCredentials, Settings
from tfrunner import TerraformRunner

logger = logging.getLogger(__name__)

ASSETS_DIR = Path(__file__).parent / 'assets'
TEMPLATE_NAME = 'setup-hcp-vpc.tf'
PLAN_FILE = 'hcp-vpc.tfplan'

# NetworkTopology field -> terraform output name
SUBNET_OUTPUTS = {
    'private_subnet': 'cluster-private-subnet',
    'public_subnet': 'cluster-public-subnet',
    'node_private_subnet': 'node-private-subnet',
}


class HCPVPCError(Exception):
    """VPC create/delete failure, tagged with the action that failed."""

    def __init__(self, action: str, cause):
        self.action = action
        self.cause = cause
        super().__init__(f"{action} hcp cluster vpc failed: {cause}")


@dataclass(frozen=True)
class NetworkTopology:
    """Subnet IDs of a created HCP VPC."""
    private_subnet: str
    public_subnet: str
    node_private_subnet: str

    def as_dict(self) -> dict[str, str]:
        """Subnet IDs keyed by terraform output name."""
        return {output: getattr(self, attr) for attr, output in SUBNET_OUTPUTS.items()}


def copy_file(src_name: str, dest) -> None:
    """Copy a bundled asset to dest, byte for byte."""
    src = ASSETS_DIR / src_name
    try:
        src_file = open(src, 'rb')
    except OSError as e:
        raise OSError(f"error opening {src_name} file: {e}") from e

    with src_file:
        try:
            dest_file = open(dest, 'wb')
        except OSError as e:
            raise OSError(f"error creating runtime {dest} file: {e}") from e

        with dest_file:
            try:
                shutil.copyfileobj(src_file, dest_file)
            except OSError as e:
                raise OSError(f"error copying source file to destination file: {e}") from e


def _unquote(value) -> str:
    return str(value).replace('"', '')


def _step(action: str, step: str, func: Callable, *args, **kwargs):
    """Run one terraform step, converting failures to HCPVPCError."""
    try:
        return func(*args, **kwargs)
    except Exception as e:
        raise HCPVPCError(action, f"failed to perform terraform {step}: {e}") from e


class HCPVPCProvisioner:
    """Creates and deletes HCP cluster VPCs with the given AWS credentials.

    ``runner_factory`` is called as ``runner_factory(working_dir, settings=...)``
    and must return an object with the TerraformRunner step methods.
    """

    def __init__(self, credentials: AwsCredentials,
                 runner_factory: Optional[Callable] = None,
                 settings: Optional[Settings] = None):
        self.credentials = credentials
        self.runner_factory = runner_factory or TerraformRunner.new
        self.settings = settings

    @contextmanager
    def _runner(self, action: str, working_dir: str) -> Iterator:
        """Yield a credentialed runner; always uninstall it afterwards."""
        try:
            tf = self.runner_factory(working_dir, settings=self.settings)
        except Exception as e:
            raise HCPVPCError(action, f"failed to construct terraform runner: {e}") from e

        try:
            try:
                tf.set_env_vars(self.credentials.credentials_as_map())
            except Exception as e:
                raise HCPVPCError(
                    action, f"failed to set terraform runner aws credentials (env vars): {e}"
                ) from e
            yield tf
        finally:
            try:
                tf.uninstall()
            except Exception as e:
                logger.debug(f"Ignoring terraform uninstall failure: {e}")

    def create_vpc(self, cluster_name: str, region: str, working_dir: str) -> NetworkTopology:
        """Create the VPC and return its subnet IDs."""
        action = 'create'

        if not cluster_name or not region or not working_dir:
            raise HCPVPCError(action, "one or more parameters is empty")

        with self._runner(action, working_dir) as tf:
            logger.info(f"Creating aws vpc (cluster_name={cluster_name}, aws_region={region})")

            try:
                copy_file(TEMPLATE_NAME, Path(working_dir) / TEMPLATE_NAME)
            except OSError as e:
                raise HCPVPCError(
                    action, f"failed to copy terraform file to working directory: {e}"
                ) from e

            variables = {'aws_region': region, 'cluster_name': cluster_name}
            _step(action, 'init', tf.init)
            _step(action, 'plan', tf.plan, variables, out=PLAN_FILE)
            _step(action, 'apply', tf.apply, PLAN_FILE)
            output = _step(action, 'output', tf.output)

            subnets = {}
            for attr, key in SUBNET_OUTPUTS.items():
                if key not in output:
                    raise HCPVPCError(action, f"terraform output missing {key}")
                subnets[attr] = _unquote(output[key].value)
            vpc = NetworkTopology(**subnets)

            logger.info(f"AWS vpc created! (cluster_name={cluster_name}, working_dir={working_dir})")
            return vpc

    def delete_vpc(self, cluster_name: str, region: str, working_dir: str) -> None:
        """Destroy the VPC recorded in working_dir's terraform state."""
        action = 'delete'

        if not cluster_name or not region or not working_dir:
            raise HCPVPCError(action, "one or more parameters is empty")

        with self._runner(action, working_dir) as tf:
            logger.info(
                f"Deleting aws vpc (cluster_name={cluster_name}, aws_region={region}, "
                f"working_dir={working_dir})"
            )

            _step(action, 'init', tf.init)
            _step(action, 'destroy', tf.destroy, {'aws_region': region, 'cluster_name': cluster_name})

            logger.info(f"AWS vpc deleted! (cluster_name={cluster_name})")


def create_hcp_vpc(cluster_name: str, region: str, working_dir: str,
                   credentials: AwsCredentials,
                   runner_factory: Optional[Callable] = None,
                   settings: Optional[Settings] = None) -> NetworkTopology:
    """Create an HCP cluster VPC. See HCPVPCProvisioner.create_vpc."""
    provisioner = HCPVPCProvisioner(credentials, runner_factory=runner_factory, settings=settings)
    return provisioner.create_vpc(cluster_name, region, working_dir)


def delete_hcp_vpc(cluster_name: str, region: str, working_dir: str,
                   credentials: AwsCredentials,
                   runner_factory: Optional[Callable] = None,
                   settings: Optional[Settings] = None) -> None:
    """Delete an HCP cluster VPC. See HCPVPCProvisioner.delete_vpc."""
    provisioner = HCPVPCProvisioner(credentials, runner_factory=runner_factory, settings=settings)
    provisioner.delete_vpc(cluster_name, region, working_dir)
