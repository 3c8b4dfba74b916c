# scripts/run_cleanup_once.py
import asyncio

from vigora.core.logging import setup_logging
from vigora.services.scheduler import run_cleanup_job

async def main():
    setup_logging()
    deleted = await run_cleanup_job()
    print({"deleted": deleted})

if __name__ == "__main__":
    asyncio.run(main())
