"""项目内使用的自定义异常定义。"""


class ImageFidelityError(Exception):
    """基础异常类型。"""

    status = "error"
    status_code = 1


class InvalidConfigurationError(ImageFidelityError):
    """配置不合法时抛出。"""

    status = "error-config"
    status_code = 255


class InvalidInputError(ImageFidelityError):
    """输入文件无法读取、格式错误或尺寸不匹配。"""

    status = "error-input"


class AlreadyProcessedError(ImageFidelityError):
    """输入文件已带有本工具写入的注释标记。"""

    status = "already-processed"
    status_code = 2


class CodecRoundTripError(ImageFidelityError):
    """刚编码的数据无法被解码回来。"""

    status = "error-codec"


class SizeRegressionError(ImageFidelityError):
    """压缩结果不小于原始文件。"""

    status = "error-size"


class StructuralIntegrityError(ImageFidelityError):
    """编码结果缺少 SOI/APP0 标记。"""

    status = "error-structure"
