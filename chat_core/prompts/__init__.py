"""系统提示词加载工具。

工作区 Agent 未配置 system prompt 时，使用本目录下的默认提示词。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_default_system_prompt() -> str:
    fname = PROMPTS_DIR / "default_system.md"
    return fname.read_text(encoding="utf-8").strip()
