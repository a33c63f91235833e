"""协议探测器模块"""

from .base import BaseProber
from .factory import ProberFactory, prober_factory, register_prober
from .http_prober import HttpProber
from .redis_prober import RedisProber
from .tcp_prober import TcpProber

__all__ = ['BaseProber', 'ProberFactory', 'prober_factory', 'register_prober',
           'HttpProber', 'TcpProber', 'RedisProber']
