#!/usr/bin/env python3
"""
Teammate entry script used by demo.py.

The lead starts this with the AGENT_TEAM_* environment set. Each claimed task
"runs" for a moment and returns a short result string.
"""
import asyncio
import os
import random

from agent_teams import run_teammate
from agent_teams.cli import setup_logging


async def execute(task):
    await asyncio.sleep(random.uniform(0.2, 0.8))
    return f"{task.title} done by {os.environ.get('AGENT_TEAM_AGENT_ID')}"


if __name__ == "__main__":
    setup_logging("INFO")
    asyncio.run(run_teammate(execute))
