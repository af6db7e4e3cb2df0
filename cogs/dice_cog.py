import discord
from discord.ext import commands

from utils.aliases import describe_aliases
from utils.config import GuildConfig
from utils.dice import roll_expression, format_roll_set_result
from utils.logger import get_logger

logger = get_logger()

# Discord embed 描述長度上限
EMBED_LIMIT = 4096


def _truncate(text: str) -> str:
    if len(text) <= EMBED_LIMIT:
        return text
    return text[:EMBED_LIMIT - 1] + "…"


class DiceCog(commands.Cog, name="Dice"):
    """骰子相關指令"""
    def __init__(self, bot, config_manager):
        self.bot = bot
        self.config_manager = config_manager

    def get_rules(self, ctx) -> GuildConfig:
        """獲取公會配置，私訊使用默認配置"""
        if ctx.guild:
            return self.config_manager.get_guild_config(ctx.guild.id)
        return GuildConfig()

    @commands.hybrid_command(name="roll", description="擲骰子，例如 4d6 k3、4d10 t8 ie10 f1、6 4d6 k3; 1d20")
    async def roll_command(self, ctx, *, expression: str):
        """擲骰子"""
        rules = self.get_rules(ctx)

        try:
            result = roll_expression(expression, rules)
        except ValueError as e:
            logger.warning(f"無法擲骰 '{expression}': {e}")
            embed = discord.Embed(
                title="擲骰錯誤",
                description=f"錯誤: {str(e)}",
                color=0xff0000
            )
            await ctx.send(embed=embed, ephemeral=True)
            return

        embed = discord.Embed(
            title="多段擲骰結果" if result.is_multi else "擲骰結果",
            description=_truncate(format_roll_set_result(result)),
            color=0x7289da
        )
        embed.set_footer(text=ctx.author.display_name)
        await ctx.send(embed=embed, ephemeral=result.private)

    @commands.hybrid_command(name="aliases", description="列出遊戲系統簡寫")
    async def aliases_command(self, ctx):
        """列出所有別名及其展開結果"""
        lines = [f"`{example}` → `{expansion}` ({system})"
                 for system, example, expansion in describe_aliases()]
        embed = discord.Embed(
            title="遊戲系統簡寫",
            description=_truncate("\n".join(lines)),
            color=0x1abc9c
        )
        await ctx.send(embed=embed, ephemeral=True)


async def setup(bot):
    """設置Cog"""
    await bot.add_cog(DiceCog(bot, bot.config_manager))
