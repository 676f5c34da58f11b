import time
import threading
from functools import wraps


def ttl_cache(ttl: int = 300):
    def decorator(func):
        cache = {}
        lock = threading.Lock()

        @wraps(func)
        def wrapped(*args, **kwargs):
            key = (args, tuple(sorted(kwargs.items())))
            now = time.time()

            # Fast path: read under lock
            with lock:
                hit = cache.get(key)
                if hit is not None:
                    value, timestamp = hit
                    if now - timestamp < ttl:
                        return value

            # Slow path: load without holding lock
            result = func(*args, **kwargs)

            with lock:
                cache[key] = (result, time.time())
                return result

        def cache_clear():
            with lock:
                cache.clear()

        def cache_evict(*args, **kwargs):
            key = (args, tuple(sorted(kwargs.items())))
            with lock:
                cache.pop(key, None)

        wrapped.cache_clear = cache_clear
        wrapped.cache_evict = cache_evict
        return wrapped
    return decorator
