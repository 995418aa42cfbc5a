# context.py
import asyncio
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from dotenv import load_dotenv

from mailfetch import ConnectionConfig, load_connection_config_from_env

load_dotenv(override=True)

MAX_WORKERS = int(os.getenv("THREADPOOL_WORKERS", "20"))

EXECUTOR = ThreadPoolExecutor(max_workers=MAX_WORKERS)

DEFAULT_MAILBOX = os.getenv("DEFAULT_MAILBOX", "{imap.gmail.com:993/imap/ssl}INBOX")

# credentials from IMAP_* env vars, used when a request carries none
ENV_CONNECTION: Optional[ConnectionConfig] = load_connection_config_from_env()


async def run_blocking(fn, *args, **kwargs):
    """
    Run blocking IO in a bounded thread pool so the event loop remains responsive.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(EXECUTOR, lambda: fn(*args, **kwargs))
