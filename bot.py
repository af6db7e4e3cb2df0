import os
from pathlib import Path
from typing import Optional

import discord
from discord.ext import commands
from dotenv import load_dotenv

from utils.config import ConfigManager
from utils.logger import get_logger

logger = get_logger()


class DiceBot:
    """擲骰機器人類"""
    def __init__(self):
        root_dir = self.find_project_root()

        # 查找環境變量文件
        env_file = self.find_env_file(root_dir)
        if env_file:
            load_dotenv(dotenv_path=env_file)

        # 從環境變量獲取token
        token = os.getenv("DISCORD_TOKEN")
        if not token:
            logger.error("未找到 DISCORD_TOKEN 環境變量，請在 .env 文件或終端中設置 DISCORD_TOKEN=your_token_here")
            raise ValueError("未找到 DISCORD_TOKEN 環境變量")

        self.token = token
        self.config_manager = ConfigManager(config_path=str(root_dir / "config.json"))
        logger.set_level(self.config_manager.global_config.log_level)
        logger.set_log_file(str(root_dir / self.config_manager.global_config.log_file))

        # 擲骰只需要讀取訊息內容
        intents = discord.Intents.default()
        intents.message_content = True

        self.bot = commands.Bot(
            command_prefix=self.config_manager.global_config.command_prefix,
            intents=intents,
            description="TRPG 擲骰機器人"
        )
        self.bot.config_manager = self.config_manager

        self.setup_events()

    def find_project_root(self) -> Path:
        """查找項目根目錄"""
        current_path = Path(__file__).resolve()

        # 包含 .git 或 pyproject.toml 的父目錄即為項目根目錄
        for parent in current_path.parents:
            if (parent / '.git').exists() or (parent / 'pyproject.toml').exists():
                return parent

        return current_path.parent

    def find_env_file(self, root_dir: Path) -> Optional[Path]:
        """查找環境變量文件"""
        for name in ('.env', '.env.local'):
            env_file = root_dir / name
            if env_file.is_file():
                logger.info(f"找到環境變量文件: {env_file}")
                return env_file

        logger.info(f"在 {root_dir} 中未找到環境變量文件")
        return None

    def setup_events(self):
        """設置事件處理器"""
        @self.bot.event
        async def on_ready():
            logger.info(f'{self.bot.user} 已經上線! 已連接到 {len(self.bot.guilds)} 個服務器')

            # 同步應用命令
            try:
                await self.bot.tree.sync()
                logger.info("應用命令已同步")
            except discord.HTTPException as e:
                logger.error(f"同步應用命令時出錯: {e}")

        @self.bot.event
        async def on_guild_join(guild):
            """當機器人加入服務器時的處理"""
            logger.info(f'加入了服務器: {guild.name} (ID: {guild.id})')

    async def add_cogs(self):
        """添加Cog模塊"""
        from cogs.dice_cog import DiceCog

        await self.bot.add_cog(DiceCog(self.bot, self.config_manager))

    async def start(self):
        """啟動機器人"""
        await self.add_cogs()
        await self.bot.start(self.token)

    async def close(self):
        """關閉機器人"""
        await self.bot.close()
