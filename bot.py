# bot.py
import asyncio, discord, os
from discord.ext import commands

import logging
logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("palmap")

BOT = commands.Bot(command_prefix="!", intents=discord.Intents.default())

@BOT.event
async def on_ready():
    logger.info(f"Logged in as {BOT.user} ({BOT.user.id})")
    try:
        synced = await BOT.tree.sync()
        logger.info(f"Synced {len(synced)} command(s).")
    except Exception as e:
        logger.error(f"Slash sync failed: {e}")

async def main():
    async with BOT:
        await BOT.load_extension("cogs.palmap")
        await BOT.start(os.environ["DISCORD_TOKEN"])

if __name__ == "__main__":
    asyncio.run(main())
