#!/usr/bin/env python3
"""
TRPG Dice Bot
支援爆骰、保留 / 捨棄、成功計數與各遊戲系統簡寫的 Discord 擲骰機器人
"""

import asyncio
import os
import sys

from dotenv import load_dotenv

# 加載環境變量
load_dotenv()

# 確保路徑正確
sys.path.insert(0, os.path.dirname(__file__))

from bot import DiceBot
from utils.logger import get_logger


async def run(bot: DiceBot):
    try:
        await bot.start()
    finally:
        await bot.close()


def main():
    """主函數"""
    logger = get_logger()

    logger.info("正在啟動 TRPG Dice Bot...")

    try:
        bot = DiceBot()
    except ValueError as e:
        logger.error(f"錯誤：{e}")
        sys.exit(1)

    try:
        asyncio.run(run(bot))
    except KeyboardInterrupt:
        logger.info("收到中斷信號，正在關閉機器人...")
    except Exception:
        logger.exception("機器人運行時出現錯誤")
        sys.exit(1)
    finally:
        logger.info("機器人已關閉")


if __name__ == "__main__":
    main()
