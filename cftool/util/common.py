from abc import ABCMeta
from functools import wraps
from pathlib import Path
from time import sleep as _sleep

import click


class Singleton(ABCMeta):
    _instances = {}
    def __call__(cls, *args, **kwargs):
        if cls not in cls._instances:
            cls._instances[cls] = super(Singleton, cls).__call__(*args, **kwargs)
        return cls._instances[cls]


def config_directory():
    directory = Path(click.get_app_dir('cftool', force_posix=True))
    directory.mkdir(exist_ok=True)
    return directory


def format_file(file):
    if isinstance(file, Path):
        file = file.as_posix()
    return click.style(file, fg='blue', bold=True)


class Backoff:
    """Capped exponential delays: base, base * multiplier, ... up to ceiling."""

    def __init__(self, base=1.0, multiplier=2.0, ceiling=8.0):
        if base < 0 or multiplier < 1 or ceiling < base:
            raise ValueError(f'Invalid backoff parameters ({base}, {multiplier}, {ceiling})')
        self.base = base
        self.multiplier = multiplier
        self.ceiling = ceiling

    def __iter__(self):
        delay = self.base
        while True:
            yield delay
            delay = min(delay * self.multiplier, self.ceiling)


def with_retries(errors, attempts=3, delay=0.5, multiplier=1.5, sleep=None, fatal=()):
    """Retry the wrapped function if it raises one of `errors`.

    Only for read-only requests. The function is called at least once,
    the last error is re-raised after `attempts` failed calls.
    Errors from `fatal` are re-raised at once, even if they are subclasses of `errors`.
    """
    attempts = max(attempts, 1)

    def decorator(func):

        @wraps(func)
        def wrapper(*args, **kwargs):
            wait = sleep or _sleep
            delays = iter(Backoff(delay, multiplier, delay * multiplier ** attempts))
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except fatal:
                    raise
                except errors:
                    if attempt == attempts:
                        raise
                wait(next(delays))

        return wrapper

    return decorator
