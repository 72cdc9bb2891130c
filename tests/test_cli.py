"""
Tests for the master and slave command lines
"""

import os
from unittest.mock import patch

import pytest

from shavadoop.client import cli
from shavadoop.common import protocol
from shavadoop.common.config import ConfigurationError, DEFAULT_REMOTE_COMMAND, ShavadoopConfig
from shavadoop.worker import slave


@pytest.fixture
def local_env(monkeypatch, temp_dir):
    monkeypatch.setenv('SHAVADOOP_RUNNER', 'local')
    monkeypatch.setenv('SHAVADOOP_PING_DELAY', '0')
    monkeypatch.setenv('SHAVADOOP_SHARED_DIR', os.path.join(temp_dir, 'shared'))


class TestConfig:

    def test_defaults(self, monkeypatch):
        for name in ('SHAVADOOP_SHARED_DIR', 'SHAVADOOP_TASKS_PER_HOST', 'SHAVADOOP_TASK_TIMEOUT',
                     'SHAVADOOP_RUNNER', 'SHAVADOOP_REMOTE_COMMAND', 'WORKER_PORT', 'SHAVADOOP_PING_DELAY'):
            monkeypatch.delenv(name, raising=False)
        config = ShavadoopConfig.from_env()
        assert config.tasks_per_host == 1
        assert config.task_timeout is None
        assert config.task_retries == 0
        assert config.runner == 'shell'
        assert config.remote_command == DEFAULT_REMOTE_COMMAND
        assert config.worker_port == 50052
        assert config.ping_delay == 10.0

    def test_environment(self, monkeypatch):
        monkeypatch.setenv('SHAVADOOP_TASKS_PER_HOST', '3')
        monkeypatch.setenv('SHAVADOOP_TASK_TIMEOUT', '2.5')
        monkeypatch.setenv('SHAVADOOP_RUNNER', 'grpc')
        config = ShavadoopConfig.from_env()
        assert (config.tasks_per_host, config.task_timeout, config.runner) == (3, 2.5, 'grpc')

    @pytest.mark.parametrize('name, value', [
        ('SHAVADOOP_TASKS_PER_HOST', 'two'),
        ('SHAVADOOP_TASKS_PER_HOST', '0'),
        ('SHAVADOOP_TASK_TIMEOUT', '-1'),
        ('SHAVADOOP_RUNNER', 'carrier-pigeon'),
        ('SHAVADOOP_REMOTE_COMMAND', 'ssh node1 worker'),
        ('SHAVADOOP_REMOTE_QUOTE', 'maybe'),
    ])
    def test_invalid_environment(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigurationError):
            ShavadoopConfig.from_env()

    def test_custom_stopwords(self, temp_dir):
        path = os.path.join(temp_dir, 'stopwords.txt')
        protocol.write_lines(path, ['Chat', '', 'chien'])
        assert ShavadoopConfig(stopwords_file=path).stopwords() == frozenset({'chat', 'chien'})


class TestMasterCli:

    def test_successful_run(self, local_env, temp_dir, write_hosts, sample_input_file, capsys):
        output = os.path.join(temp_dir, 'out.txt')
        status = os.path.join(temp_dir, 'status.txt')

        code = cli.main([write_hosts('node1'), status, sample_input_file, output, '2'])

        assert code == 0
        assert protocol.read_lines(status) == ['node1: true']
        assert protocol.read_lines(output)[0] == 'chat:2'
        assert '8 words counted' in capsys.readouterr().out

    def test_no_reachable_hosts(self, local_env, temp_dir, write_hosts, sample_input_file, capsys):
        output = os.path.join(temp_dir, 'out.txt')
        with patch('shavadoop.coordinator.executor.LocalTaskRunner.run', side_effect=ConnectionError):
            code = cli.main([write_hosts('node1'), os.path.join(temp_dir, 'status.txt'),
                             sample_input_file, output])
        assert code == 1
        assert 'No reachable slave hosts' in capsys.readouterr().err
        assert not os.path.exists(output)

    def test_invalid_split_size(self, local_env, temp_dir, write_hosts, sample_input_file):
        code = cli.main([write_hosts('node1'), os.path.join(temp_dir, 'status.txt'),
                         sample_input_file, os.path.join(temp_dir, 'out.txt'), '0'])
        assert code == 2
        assert not os.path.exists(os.path.join(temp_dir, 'status.txt'))

    def test_corpus_outside_the_platform_encoding(self, local_env, temp_dir, write_hosts):
        corpus = os.path.join(temp_dir, 'corpus.txt')
        with open(corpus, 'wb') as f:
            f.write(b'le chat mang\xe9\n')
        output = os.path.join(temp_dir, 'out.txt')

        code = cli.main([write_hosts('node1'), os.path.join(temp_dir, 'status.txt'), corpus, output])

        assert code == 0
        assert 'chat:1' in protocol.read_lines(output)

    def test_missing_arguments(self):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(['hosts.txt', 'status.txt'])
        assert excinfo.value.code == 2

    def test_flags_override_environment(self, local_env):
        args = cli.build_parser().parse_args(['h', 's', 'i', 'o', '--tasks-per-host', '4', '--runner', 'grpc'])
        config = cli.load_config(args)
        assert config.tasks_per_host == 4
        assert config.runner == 'grpc'

    def test_remote_quoting(self, local_env, monkeypatch):
        monkeypatch.delenv('SHAVADOOP_REMOTE_QUOTE', raising=False)
        assert cli.load_config(cli.build_parser().parse_args(['h', 's', 'i', 'o'])).quote_remote_args
        args = cli.build_parser().parse_args(['h', 's', 'i', 'o', '--no-remote-quote'])
        assert cli.load_config(args).quote_remote_args is False
        monkeypatch.setenv('SHAVADOOP_REMOTE_QUOTE', 'false')
        assert ShavadoopConfig.from_env().quote_remote_args is False


class TestSlaveCli:

    def test_ping(self, local_env, capsys):
        assert slave.main(['PING']) == 0
        assert capsys.readouterr().out == 'OK\n'

    def test_map(self, local_env, temp_dir, capsys):
        split = protocol.split_file(temp_dir, 0)
        protocol.write_lines(split, ['souris'])
        assert slave.main(['MAP', split]) == 0
        assert capsys.readouterr().out == f'souris:{protocol.umx_for_split(split)}\n'

    def test_failure_exits_nonzero_without_output(self, local_env, temp_dir, capsys):
        assert slave.main(['MAP', os.path.join(temp_dir, 'S3')]) == 1
        assert capsys.readouterr().out == ''

    def test_unknown_operation(self):
        with pytest.raises(SystemExit):
            slave.main(['REDUCE'])
