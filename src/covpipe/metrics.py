import functools
import logging
import time
import typing
from datetime import timedelta

from . import context


def timeit(description: str) -> typing.Callable:
    def timeit_decorator(func: typing.Callable) -> typing.Callable:
        @functools.wraps(func)
        def wrapper_timeit(
            *,
            ctx: context.WorkContext,
            **kwargs: typing.Any,
        ) -> typing.Any:
            ctx.time_description_store[func.__name__] = description

            start = time.perf_counter()
            try:
                return func(ctx=ctx, **kwargs)
            finally:
                runtime = time.perf_counter() - start
                # get the logger for the module from which this function was called
                logger = logging.getLogger(func.__module__)
                logger.debug(
                    f"{func.__name__} took {timedelta(seconds=runtime)} to {description}"
                )
                # store total time spent calling that function
                ctx.time_store[func.__name__] = (
                    ctx.time_store.get(func.__name__, 0) + runtime
                )

        return wrapper_timeit

    return timeit_decorator


def summarize(ctx: context.WorkContext, prefix: str) -> None:
    logger = logging.getLogger(__name__)
    if not ctx.time_store:
        return
    total_time = sum(ctx.time_store.values())
    log = f"{prefix} took {timedelta(seconds=total_time)} total"
    for fn_name, time_taken in ctx.time_store.items():
        log += f", {timedelta(seconds=time_taken)} to {ctx.time_description_store[fn_name]}"
    logger.info(log)
