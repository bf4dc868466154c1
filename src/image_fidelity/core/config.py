"""比较与重压缩任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Type, TypeVar

from image_fidelity.core.exceptions import InvalidConfigurationError


class Method(str, Enum):
    """相似度计算方法。"""

    FAST = "fast"
    PSNR = "psnr"
    SSIM = "ssim"
    MS_SSIM = "ms-ssim"
    SMALLFRY = "smallfry"
    MPE = "mpe"


class QualityPreset(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERYHIGH = "veryhigh"


class FileType(str, Enum):
    AUTO = "auto"
    JPEG = "jpeg"
    PPM = "ppm"


class Subsampling(str, Enum):
    """色度抽样方式：default 交给编码器决定，disable 强制 4:4:4。"""

    DEFAULT = "default"
    DISABLE = "disable"


class SSIMWindow(str, Enum):
    GAUSSIAN = "gaussian"  # 11x11, sigma = 1.5
    LINEAR = "linear"  # 8x8 均值窗口


RECOMPRESS_METHODS = frozenset({Method.SSIM, Method.MS_SSIM, Method.SMALLFRY, Method.MPE})

# 各方法在不同质量档位下的目标分数。
TARGET_PRESETS: dict[Method, dict[QualityPreset, float]] = {
    Method.SSIM: {
        QualityPreset.LOW: 0.999,
        QualityPreset.MEDIUM: 0.9999,
        QualityPreset.HIGH: 0.99995,
        QualityPreset.VERYHIGH: 0.99999,
    },
    Method.MS_SSIM: {
        QualityPreset.LOW: 0.85,
        QualityPreset.MEDIUM: 0.94,
        QualityPreset.HIGH: 0.96,
        QualityPreset.VERYHIGH: 0.98,
    },
    Method.SMALLFRY: {
        QualityPreset.LOW: 100.75,
        QualityPreset.MEDIUM: 102.25,
        QualityPreset.HIGH: 103.8,
        QualityPreset.VERYHIGH: 105.5,
    },
    Method.MPE: {
        QualityPreset.LOW: 1.5,
        QualityPreset.MEDIUM: 1.0,
        QualityPreset.HIGH: 0.8,
        QualityPreset.VERYHIGH: 0.6,
    },
}

# MS-SSIM 论文给出的五个尺度权重。
MS_SSIM_ALPHAS = (0.0, 0.0, 0.0, 0.0, 0.1333)
MS_SSIM_BETAS = (0.0448, 0.2856, 0.3001, 0.2363, 0.1333)
MS_SSIM_GAMMAS = (0.0448, 0.2856, 0.3001, 0.2363, 0.1333)

E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: str) -> E:
    """将命令行/配置文本解析为枚举值，未知取值直接报错。"""

    try:
        return enum_cls(value.strip().lower())
    except ValueError as exc:
        choices = ", ".join(member.value for member in enum_cls)
        raise InvalidConfigurationError(f"未知的取值 {value!r}，可选: {choices}") from exc


@dataclass(frozen=True, slots=True)
class SSIMParams:
    """SSIM 的可调参数。

    ``downsample`` 即预缩放因子：``None`` 表示按最短边自动计算，
    ``1`` 表示不做预缩放。
    """

    window: SSIMWindow = SSIMWindow.GAUSSIAN
    alpha: float = 1.0
    beta: float = 1.0
    gamma: float = 1.0
    k1: float = 0.01
    k2: float = 0.03
    dynamic_range: int = 255
    downsample: Optional[int] = None

    def __post_init__(self) -> None:
        if self.downsample is not None and self.downsample < 1:
            raise InvalidConfigurationError("downsample 必须为正整数")
        if self.dynamic_range <= 0:
            raise InvalidConfigurationError("dynamic_range 必须大于 0")

    @property
    def c1(self) -> float:
        return (self.k1 * self.dynamic_range) ** 2

    @property
    def c2(self) -> float:
        return (self.k2 * self.dynamic_range) ** 2


@dataclass(frozen=True, slots=True)
class MSSSIMParams:
    """多尺度 SSIM 参数，默认即 Rouse/Hemami (MS-SSIM*) 预设。"""

    scales: int = 5
    alphas: Tuple[float, ...] = MS_SSIM_ALPHAS
    betas: Tuple[float, ...] = MS_SSIM_BETAS
    gammas: Tuple[float, ...] = MS_SSIM_GAMMAS
    window: SSIMWindow = SSIMWindow.GAUSSIAN
    k1: float = 0.0
    k2: float = 0.0
    dynamic_range: int = 255

    def __post_init__(self) -> None:
        if self.scales < 1:
            raise InvalidConfigurationError("scales 必须至少为 1")
        for name, weights in (("alphas", self.alphas), ("betas", self.betas), ("gammas", self.gammas)):
            if len(weights) != self.scales:
                raise InvalidConfigurationError(f"{name} 的长度必须等于 scales ({self.scales})")

    @classmethod
    def rouse_hemami(cls, window: SSIMWindow = SSIMWindow.GAUSSIAN) -> "MSSSIMParams":
        return cls(window=window)

    @classmethod
    def wang(cls, window: SSIMWindow = SSIMWindow.GAUSSIAN) -> "MSSSIMParams":
        return cls(window=window, k1=0.01, k2=0.03)

    def level_params(self, index: int, coarsest: bool) -> SSIMParams:
        """返回第 ``index`` 层使用的分量参数；最粗一层总是取最后一组权重。"""

        weight_index = self.scales - 1 if coarsest else index
        return SSIMParams(
            window=self.window,
            alpha=self.alphas[weight_index],
            beta=self.betas[weight_index],
            gamma=self.gammas[weight_index],
            k1=self.k1,
            k2=self.k2,
            dynamic_range=self.dynamic_range,
            downsample=1,
        )


@dataclass(frozen=True, slots=True)
class RecompressOptions:
    """单次重压缩任务的只读配置快照。"""

    method: Method = Method.SSIM
    attempts: int = 6
    target: Optional[float] = None
    preset: QualityPreset = QualityPreset.MEDIUM
    quality_min: int = 40
    quality_max: int = 95
    strip: bool = False
    no_progressive: bool = False
    defish_strength: float = 0.0
    defish_zoom: float = 1.0
    input_filetype: FileType = FileType.AUTO
    copy_files: bool = True
    accurate: bool = False
    subsample: Subsampling = Subsampling.DEFAULT
    quiet: bool = False

    def __post_init__(self) -> None:
        if self.method not in RECOMPRESS_METHODS:
            raise InvalidConfigurationError(f"重压缩不支持的比较方法: {self.method.value}")
        if self.attempts < 1:
            raise InvalidConfigurationError("attempts 必须至少为 1")
        if not 1 <= self.quality_min <= 100 or not 1 <= self.quality_max <= 100:
            raise InvalidConfigurationError("JPEG 质量范围必须位于 1~100")
        if self.quality_min > self.quality_max:
            raise InvalidConfigurationError("quality_min 不能大于 quality_max")

    def resolved_target(self) -> float:
        """显式目标优先，否则按方法与档位查表。"""

        if self.target:
            return self.target
        return TARGET_PRESETS[self.method][self.preset]


@dataclass(frozen=True, slots=True)
class CompareOptions:
    """两张图片比较时的配置。"""

    method: Method = Method.FAST
    hash_size: int = 16
    first_filetype: FileType = FileType.AUTO
    second_filetype: FileType = FileType.AUTO
    ssim: Optional[SSIMParams] = None
    ms_ssim: MSSSIMParams = field(default_factory=MSSSIMParams)

    def __post_init__(self) -> None:
        if self.hash_size < 2:
            raise InvalidConfigurationError("hash_size 必须至少为 2")
