"""Shared pytest fixtures for hcp-vpc tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import AwsCredentials  # noqa: E402
from tfrunner.runner import OutputMeta  # noqa: E402


class FakeRunner:
    """In-memory stand-in for TerraformRunner.

    Records every call in ``calls``; ``fail`` maps a step name to the
    exception that step raises.
    """

    def __init__(self, working_dir, outputs=None, fail=None):
        self.working_dir = Path(working_dir)
        self.outputs = outputs if outputs is not None else {
            'cluster-private-subnet': OutputMeta(value='"10.0.1.0/24"', type='string'),
            'cluster-public-subnet': OutputMeta(value='"10.0.2.0/24"', type='string'),
            'node-private-subnet': OutputMeta(value='"10.0.3.0/24"', type='string'),
        }
        self.fail = fail or {}
        self.calls = []
        self.env = {}
        self.template_at_init = None

    def _record(self, step, *args, **kwargs):
        self.calls.append((step, args, kwargs))
        if step in self.fail:
            raise self.fail[step]

    def set_env_vars(self, env):
        self._record('set_env_vars', env)
        self.env.update(env)

    def init(self):
        template = self.working_dir / 'setup-hcp-vpc.tf'
        if template.exists():
            self.template_at_init = template.read_bytes()
        self._record('init')

    def plan(self, variables=None, out=None):
        self._record('plan', variables, out=out)
        return True

    def apply(self, plan_file=None, variables=None):
        self._record('apply', plan_file)

    def destroy(self, variables=None):
        self._record('destroy', variables)

    def output(self):
        self._record('output')
        return self.outputs

    def uninstall(self):
        self._record('uninstall')

    def steps(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def credentials():
    """Static access key credentials."""
    return AwsCredentials(
        access_key_id='AKIAEXAMPLE',
        secret_access_key='secret',
        region='us-east-1',
    )


@pytest.fixture
def fake_runner_factory():
    """Factory producing FakeRunner instances; created runners kept in .runners.

    Set ``factory.fail`` / ``factory.outputs`` before the workflow call to
    configure the runner it will build.
    """
    class Factory:
        def __init__(self):
            self.runners = []
            self.fail = {}
            self.outputs = None
            self.calls = 0

        def __call__(self, working_dir, settings=None):
            self.calls += 1
            runner = FakeRunner(working_dir, outputs=self.outputs, fail=self.fail)
            self.runners.append(runner)
            return runner

        @property
        def runner(self):
            return self.runners[-1]

    return Factory()
