"""
Prometheus metrics for the game server.
"""
import time
from functools import wraps
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram

from .logging_config import get_logger

logger = get_logger("monitoring")

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

websocket_connections = Gauge(
    'websocket_connections_total',
    'Current WebSocket connections',
    ['session_id']
)

active_sessions = Gauge(
    'active_sessions_total',
    'Number of game sessions held in memory'
)

game_commands_total = Counter(
    'game_commands_total',
    'Game commands processed',
    ['command', 'outcome']
)

dice_rolls_total = Counter(
    'dice_rolls_total',
    'Dice rolls',
    ['partial']
)

cards_drawn_total = Counter(
    'cards_drawn_total',
    'Cards drawn',
    ['category']
)


broadcast_duration_seconds = Histogram(
    'broadcast_duration_seconds',
    'Time spent pushing session updates to WebSocket clients'
)


def track_performance(histogram: Histogram) -> Callable:
    """Decorator for coroutines: observe their duration and log failures."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "function_failed",
                    function=func.__name__,
                    duration=time.time() - start_time,
                    error=str(e)
                )
                raise
            finally:
                histogram.observe(time.time() - start_time)
        return wrapper
    return decorator

def record_command(command: str, outcome: str):
    """Count a processed game command ('ok', 'rejected' or 'not_found')."""
    game_commands_total.labels(command=command, outcome=outcome).inc()
