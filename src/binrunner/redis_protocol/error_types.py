"""
Shared exception groupings for Redis access.
"""

import asyncio
from json import JSONDecodeError
from typing import Tuple, Type

from redis.exceptions import RedisError

ExceptionTuple = Tuple[Type[BaseException], ...]

# Redis operations may surface redis-py errors along with generic timeout/OS failures.
REDIS_ERRORS: ExceptionTuple = (RedisError, asyncio.TimeoutError, OSError, RuntimeError)

# Stored payloads are decoded with orjson, whose error derives from JSONDecodeError.
PARSING_ERRORS: ExceptionTuple = (JSONDecodeError, TypeError, ValueError)
