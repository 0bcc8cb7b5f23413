"""项目内使用的自定义异常定义。"""


class LocalizerError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(LocalizerError):
    """配置不合法时抛出。"""


class ProcessingAborted(LocalizerError):
    """任务被用户中断时抛出。"""


class PermitRequestError(LocalizerError):
    """许可申请或释放的数量不合法（调用方缺陷，不是瞬时错误）。"""


class AssetError(LocalizerError):
    """单个资源处理失败，只影响该资源本身。"""


class AssetFetchError(AssetError):
    """网络请求失败、响应异常或超时。"""


class TranscodeError(AssetError):
    """图片解码或重新编码失败。"""


class AssetWriteError(AssetError):
    """资源文件写入失败。"""


class DocumentProcessingError(LocalizerError):
    """文档级错误：只中止当前文档。"""

    def __init__(self, message: str, source_path=None) -> None:
        super().__init__(message)
        self.source_path = source_path


class DocumentReadError(DocumentProcessingError):
    """源文档无法读取。"""


class DocumentWriteError(DocumentProcessingError):
    """目标目录或文档无法写入。"""
