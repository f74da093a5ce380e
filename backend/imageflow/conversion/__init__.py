from .engine import ConversionEngine
from .models import BatchConfig, ConversionItem, ItemStatus, SourceFile, converted_filename

__all__ = ["ConversionEngine", "BatchConfig", "ConversionItem", "ItemStatus", "SourceFile", "converted_filename"]
