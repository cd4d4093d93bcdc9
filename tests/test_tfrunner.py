"""Tests for TerraformRunner.

run_command is patched so no terraform binary is needed.
"""

import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import Settings
from tfrunner.runner import OutputMeta, TerraformError, TerraformRunner


def _runner(tmp_path, **settings_kwargs):
    return TerraformRunner(tmp_path, Path('/opt/tf/terraform'), settings=Settings(**settings_kwargs))


class TestNew:
    """Test TerraformRunner.new."""

    def test_missing_working_dir(self, tmp_path):
        with pytest.raises(TerraformError, match='does not exist'):
            TerraformRunner.new(tmp_path / 'nope')

    def test_installs_terraform(self, tmp_path):
        with patch('tfrunner.runner.TerraformInstaller') as mock_cls:
            mock_cls.return_value.install.return_value = Path('/tmp/tf-x/terraform')
            runner = TerraformRunner.new(tmp_path)

        assert runner.exec_path == Path('/tmp/tf-x/terraform')
        assert runner.working_dir == tmp_path
        assert runner.installer is mock_cls.return_value

    def test_uninstall_delegates_to_installer(self, tmp_path):
        installer = MagicMock()
        runner = TerraformRunner(tmp_path, Path('/x/terraform'), installer=installer)
        runner.uninstall()
        installer.remove.assert_called_once_with()


class TestSetEnvVars:
    """Test set_env_vars."""

    def test_accepts_aws_vars(self, tmp_path):
        runner = _runner(tmp_path)
        runner.set_env_vars({'AWS_PROFILE': 'ci'})
        runner.set_env_vars({'AWS_REGION': 'us-east-2'})
        assert runner.env == {'AWS_PROFILE': 'ci', 'AWS_REGION': 'us-east-2'}

    @pytest.mark.parametrize('key', ['TF_LOG', 'TF_IN_AUTOMATION', 'TF_WORKSPACE', 'TF_VAR_cluster_name'])
    def test_rejects_managed_vars(self, tmp_path, key):
        runner = _runner(tmp_path)
        with pytest.raises(TerraformError, match=key):
            runner.set_env_vars({key: 'x'})
        assert runner.env == {}


class TestSteps:
    """Test the command lines each step builds."""

    def test_init(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(0, '', '')) as mock_cmd:
            runner.init()

        cmd = mock_cmd.call_args[0][0]
        assert cmd == ['/opt/tf/terraform', 'init', '-no-color', '-input=false']
        assert mock_cmd.call_args[1]['cwd'] == tmp_path
        assert mock_cmd.call_args[1]['timeout'] == 300

    def test_environment(self, tmp_path):
        runner = _runner(tmp_path)
        runner.set_env_vars({'AWS_ACCESS_KEY_ID': 'AKIA'})
        with patch('tfrunner.runner.run_command', return_value=(0, '', '')) as mock_cmd:
            runner.init()

        env = mock_cmd.call_args[1]['env']
        assert env['AWS_ACCESS_KEY_ID'] == 'AKIA'
        assert env['TF_IN_AUTOMATION'] == '1'
        assert 'PATH' in env

    def test_plan_with_changes(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(2, '', '')) as mock_cmd:
            changed = runner.plan({'aws_region': 'us-east-1', 'cluster_name': 'c1'}, out='vpc.tfplan')

        assert changed is True
        cmd = mock_cmd.call_args[0][0]
        assert cmd[1] == 'plan'
        assert '-detailed-exitcode' in cmd
        assert '-out=vpc.tfplan' in cmd
        assert cmd[-4:] == ['-var', 'aws_region=us-east-1', '-var', 'cluster_name=c1']

    def test_plan_without_changes(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(0, '', '')):
            assert runner.plan({}) is False

    def test_plan_failure(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(1, '', 'Error: invalid region')):
            with pytest.raises(TerraformError) as exc_info:
                runner.plan({'aws_region': 'nowhere'})

        err = exc_info.value
        assert err.returncode == 1
        assert err.stderr == 'Error: invalid region'
        assert 'terraform plan exited 1: Error: invalid region' in str(err)

    def test_apply_plan_file(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(0, '', '')) as mock_cmd:
            runner.apply('vpc.tfplan')

        cmd = mock_cmd.call_args[0][0]
        assert cmd[1:] == ['apply', '-no-color', '-input=false', '-auto-approve', 'vpc.tfplan']
        assert mock_cmd.call_args[1]['timeout'] == 1800

    def test_apply_variables(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(0, '', '')) as mock_cmd:
            runner.apply(variables={'cluster_name': 'c1'})

        cmd = mock_cmd.call_args[0][0]
        assert cmd[-2:] == ['-var', 'cluster_name=c1']

    def test_destroy(self, tmp_path):
        runner = _runner(tmp_path, timeouts={'destroy': 42})
        with patch('tfrunner.runner.run_command', return_value=(0, '', '')) as mock_cmd:
            runner.destroy({'aws_region': 'us-east-1'})

        cmd = mock_cmd.call_args[0][0]
        assert cmd[1:5] == ['destroy', '-no-color', '-input=false', '-auto-approve']
        assert cmd[-2:] == ['-var', 'aws_region=us-east-1']
        assert mock_cmd.call_args[1]['timeout'] == 42

    def test_destroy_timeout(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(-1, '', 'Command timed out after 1800s')):
            with pytest.raises(TerraformError, match='timed out'):
                runner.destroy({})


class TestOutput:
    """Test output parsing."""

    def test_parses_json(self, tmp_path):
        stdout = """{
          "cluster-private-subnet": {"sensitive": false, "type": "string", "value": "subnet-0a"},
          "ids": {"sensitive": true, "type": ["list", "string"], "value": ["a", "b"]}
        }"""
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(0, stdout, '')) as mock_cmd:
            outputs = runner.output()

        assert mock_cmd.call_args[0][0][1:] == ['output', '-no-color', '-json']
        assert outputs['cluster-private-subnet'] == OutputMeta(
            value='"subnet-0a"', type='string', sensitive=False,
        )
        assert outputs['ids'].value == '["a", "b"]'
        assert outputs['ids'].sensitive is True

    def test_empty_outputs(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(0, '{}\n', '')):
            assert runner.output() == {}

    def test_invalid_json(self, tmp_path):
        runner = _runner(tmp_path)
        with patch('tfrunner.runner.run_command', return_value=(0, 'not json', '')):
            with pytest.raises(TerraformError, match='invalid JSON'):
                runner.output()
