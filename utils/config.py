import json
import os
from dataclasses import dataclass, asdict, fields
from typing import Dict, Any


@dataclass
class GlobalConfig:
    """全局配置"""
    command_prefix: str = "!"
    log_level: str = "INFO"
    log_file: str = "bot.log"

    def __post_init__(self):
        if not self.command_prefix:
            self.command_prefix = "!"
        self.log_level = self.log_level.upper()


@dataclass
class GuildConfig:
    """公會配置（擲骰上限）"""
    max_dice_count: int = 500
    max_dice_sides: int = 1000
    max_chain_length: int = 100  # 爆骰 / 重擲鏈上限
    max_segments: int = 4
    min_roll_sets: int = 2
    max_roll_sets: int = 20
    max_input_length: int = 1000

    def __post_init__(self):
        for item in fields(self):
            value = getattr(self, item.name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"配置 {item.name} 必須是正整數")
        if self.min_roll_sets > self.max_roll_sets:
            raise ValueError("min_roll_sets 不能大於 max_roll_sets")


DEFAULT_RULES = GuildConfig()


def _pick(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """只保留資料類別認得的欄位"""
    names = {item.name for item in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


class ConfigManager:
    """配置管理器"""
    def __init__(self, config_path: str = "config.json"):
        self.config_path = config_path
        self.global_config = GlobalConfig()
        self.guild_configs: Dict[int, GuildConfig] = {}
        self.load_config()

    def load_config(self):
        """加載配置"""
        if os.path.exists(self.config_path):
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            # 加載全局配置
            self.global_config = GlobalConfig(**_pick(GlobalConfig, data.get('global', {})))

            # 加載公會配置
            guild_data = data.get('guilds', {})
            for guild_id, cfg in guild_data.items():
                self.guild_configs[int(guild_id)] = GuildConfig(**_pick(GuildConfig, cfg))
        else:
            # 如果配置文件不存在，創建默認配置
            self.save_config()

    def save_config(self):
        """保存配置"""
        data = {
            'global': asdict(self.global_config),
            'guilds': {str(guild_id): asdict(config)
                       for guild_id, config in self.guild_configs.items()}
        }

        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def get_guild_config(self, guild_id: int) -> GuildConfig:
        """獲取公會配置"""
        return self.guild_configs.get(guild_id, GuildConfig())

    def set_guild_config(self, guild_id: int, config: GuildConfig):
        """設置公會配置"""
        self.guild_configs[guild_id] = config
        self.save_config()
