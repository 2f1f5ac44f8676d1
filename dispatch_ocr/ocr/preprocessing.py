"""Optional image cleanup applied before recognition.

Converts photographed or scanned delivery reports to grayscale, reduces
noise, and binarizes them so Tesseract sees crisp text.
"""

import cv2
import numpy as np

from dispatch_ocr.utils.config import PreprocessingConfig
from dispatch_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_DENOISE_METHODS = ("bilateral", "gaussian")
_BINARIZE_METHODS = ("otsu", "adaptive")


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an image to grayscale if it has color channels.

    Args:
        image: Input image (RGB, RGBA, or grayscale).

    Returns:
        Grayscale image.
    """
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    return image


def denoise(image: np.ndarray, method: str = "bilateral") -> np.ndarray:
    """Apply noise reduction using the specified method.

    Args:
        image: Grayscale image.
        method: ``"bilateral"`` (edge preserving) or ``"gaussian"``.

    Returns:
        Denoised image.

    Raises:
        ValueError: If an unsupported method is specified.
    """
    if method == "gaussian":
        return cv2.GaussianBlur(image, (5, 5), 0)
    if method == "bilateral":
        return cv2.bilateralFilter(image, 9, 75, 75)
    raise ValueError(f"Unsupported denoise method: {method}")


def binarize(image: np.ndarray, method: str = "otsu") -> np.ndarray:
    """Threshold a grayscale image to black and white.

    Args:
        image: Grayscale image.
        method: ``"otsu"`` (global) or ``"adaptive"`` (Gaussian, local).

    Returns:
        Binary image with pixel values 0 or 255.

    Raises:
        ValueError: If an unsupported method is specified.
    """
    if method == "otsu":
        _, binary = cv2.threshold(image, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        return binary
    if method == "adaptive":
        return cv2.adaptiveThreshold(
            image, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
        )
    raise ValueError(f"Unsupported binarize method: {method}")


class ImagePreprocessor:
    """Configurable grayscale, denoise, and binarize chain.

    Args:
        config: Preprocessing configuration controlling which steps to apply.

    Raises:
        ValueError: If the configuration names an unknown method.
    """

    def __init__(self, config: PreprocessingConfig) -> None:
        if config.denoise_method not in _DENOISE_METHODS:
            raise ValueError(f"Unsupported denoise method: {config.denoise_method}")
        if config.binarize_method not in _BINARIZE_METHODS:
            raise ValueError(f"Unsupported binarize method: {config.binarize_method}")
        self.config = config

    def process(self, image: np.ndarray) -> np.ndarray:
        result = to_gray(image)

        if self.config.denoise_enabled:
            result = denoise(result, self.config.denoise_method)

        if self.config.binarize_enabled:
            result = binarize(result, self.config.binarize_method)

        logger.debug("Preprocessed image of shape %s", result.shape)
        return result
