"""CLI接口功能测试"""

import os
import tempfile
import pytest
import yaml
from aiohttp import web
from aiohttp.test_utils import TestServer

from main import (
    create_argument_parser,
    validate_config_file,
    check_once,
    __version__
)


def write_config(config_data):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False,
                                     encoding='utf-8') as f:
        yaml.dump(config_data, f, default_flow_style=False, allow_unicode=True)
        return f.name


class TestArgumentParser:
    """命令行参数解析器测试"""

    def test_create_argument_parser(self):
        """测试创建参数解析器"""
        parser = create_argument_parser()

        assert parser.prog == 'uptime-monitor'
        assert '服务可用性监控系统' in parser.description

    def test_parse_basic_args(self):
        """测试解析基本参数"""
        parser = create_argument_parser()

        args = parser.parse_args(['config.yaml'])
        assert args.config_file == 'config.yaml'
        assert not args.validate
        assert not args.check_once
        assert args.log_level is None
        assert args.log_file is None

    def test_parse_flags(self):
        """测试验证与单次检查标志"""
        parser = create_argument_parser()

        args = parser.parse_args(['--validate', 'config.yaml'])
        assert args.validate

        args = parser.parse_args(['--check-once', 'config.yaml'])
        assert args.check_once

    def test_parse_log_options(self):
        """测试日志参数"""
        parser = create_argument_parser()

        args = parser.parse_args(['--log-level', 'DEBUG', '--log-file', 'app.log', 'config.yaml'])
        assert args.log_level == 'DEBUG'
        assert args.log_file == 'app.log'

    def test_invalid_log_level(self):
        """测试无效日志级别"""
        parser = create_argument_parser()

        with pytest.raises(SystemExit):
            parser.parse_args(['--log-level', 'VERBOSE', 'config.yaml'])

    def test_version(self, capsys):
        """测试版本信息"""
        parser = create_argument_parser()

        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(['--version'])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestValidateConfigFile:
    """配置文件验证测试"""

    def test_valid_config(self, capsys):
        """测试验证有效配置"""
        config_path = write_config({
            'targets': [{'name': 'api', 'address': 'https://api.example.com', 'protocol': 'http'}],
            'broadcast': {'webhooks': [{'name': 'hook', 'url': 'https://example.com/hook'}]},
        })
        try:
            assert validate_config_file(config_path) is True
            output = capsys.readouterr().out
            assert '目标数量: 1' in output
            assert 'Webhook数量: 1' in output
            assert 'api (http https://api.example.com)' in output
        finally:
            os.unlink(config_path)

    def test_invalid_config(self, capsys):
        """测试验证无效配置"""
        config_path = write_config({'targets': [{'name': 'api', 'protocol': 'http'}]})
        try:
            assert validate_config_file(config_path) is False
            assert '配置文件验证失败' in capsys.readouterr().out
        finally:
            os.unlink(config_path)

    def test_missing_file(self):
        """测试配置文件不存在"""
        assert validate_config_file('/nonexistent/config.yaml') is False


class TestCheckOnce:
    """单次探测测试"""

    @pytest.mark.asyncio
    async def test_all_online(self, capsys):
        """测试所有目标在线"""
        async def health(request):
            return web.Response(text='ok')

        app = web.Application()
        app.router.add_get('/health', health)

        async with TestServer(app) as server:
            config_path = write_config({'targets': [
                {'name': 'api', 'address': str(server.make_url('/health')), 'protocol': 'http'},
                {'name': 'port', 'address': f'127.0.0.1:{server.port}', 'protocol': 'tcp'},
            ]})
            try:
                assert await check_once(config_path) is True
            finally:
                os.unlink(config_path)

        output = capsys.readouterr().out
        assert '✅ api: 在线' in output
        assert '✅ port: 在线' in output

    @pytest.mark.asyncio
    async def test_offline_target(self, capsys, unused_tcp_port):
        """测试目标离线时返回False"""
        config_path = write_config({
            'global': {'tcp_timeout': 1},
            'targets': [{'name': 'db', 'address': f'127.0.0.1:{unused_tcp_port}',
                         'protocol': 'tcp'}],
        })
        try:
            assert await check_once(config_path) is False
        finally:
            os.unlink(config_path)

        assert '❌ db: 离线' in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_invalid_config(self, capsys):
        """测试配置无效时返回False"""
        assert await check_once('/nonexistent/config.yaml') is False
        assert '配置加载失败' in capsys.readouterr().out
