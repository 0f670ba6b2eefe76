from .config import EngineConfig, load_config
from .report import format_file_size, render_markdown, save_report
from .tamper_pipeline import TamperPipeline, TamperReport

__all__ = ["EngineConfig", "format_file_size", "load_config", "render_markdown", "save_report", "TamperPipeline", "TamperReport"]
