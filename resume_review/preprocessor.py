"""Image cleanup ahead of Tesseract."""
import cv2
import numpy as np
from loguru import logger

from resume_review.errors import ExtractionError


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode PNG/JPEG/WEBP bytes into a BGR array."""
    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    img = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if img is None:
        raise ExtractionError("Failed to read image file")
    return img


def to_gray(img: np.ndarray) -> np.ndarray:
    if img.ndim == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    return img


def detect_skew_angle(gray: np.ndarray) -> float:
    """Median angle of near-horizontal line segments, in degrees."""
    edges = cv2.Canny(gray, 50, 150, apertureSize=3)
    segments = cv2.HoughLinesP(edges, 1, np.pi / 180, threshold=100, minLineLength=100, maxLineGap=10)
    if segments is None:
        return 0.0

    angles = []
    for x1, y1, x2, y2 in segments[:, 0]:
        if x2 == x1:
            continue
        angle = np.degrees(np.arctan2(y2 - y1, x2 - x1))
        if abs(angle) < 45:
            angles.append(angle)
    return float(np.median(angles)) if angles else 0.0


def deskew(gray: np.ndarray, angle: float) -> np.ndarray:
    """Rotate around the centre, growing the canvas and padding with white."""
    h, w = gray.shape[:2]
    matrix = cv2.getRotationMatrix2D((w / 2, h / 2), angle, 1.0)
    cos, sin = abs(matrix[0, 0]), abs(matrix[0, 1])
    new_w = int(h * sin + w * cos)
    new_h = int(h * cos + w * sin)
    matrix[0, 2] += new_w / 2 - w / 2
    matrix[1, 2] += new_h / 2 - h / 2
    return cv2.warpAffine(gray, matrix, (new_w, new_h), borderMode=cv2.BORDER_CONSTANT, borderValue=255)


def upscale(gray: np.ndarray, min_dimension: int) -> np.ndarray:
    h, w = gray.shape[:2]
    longest = max(h, w)
    if longest >= min_dimension:
        return gray
    factor = min_dimension / longest
    return cv2.resize(gray, (int(w * factor), int(h * factor)), interpolation=cv2.INTER_CUBIC)


def is_low_contrast(gray: np.ndarray, threshold: float = 0.2) -> bool:
    return (int(gray.max()) - int(gray.min())) / 255.0 < threshold


def prepare_for_ocr(image_bytes: bytes, min_dimension: int = 1024) -> np.ndarray:
    """Grayscale, deskew (> 1 degree), upscale small scans and stretch flat contrast."""
    gray = to_gray(decode_image(image_bytes))

    try:
        angle = detect_skew_angle(gray)
    except cv2.error as e:
        logger.warning(f"Skew detection failed: {e}")
        angle = 0.0
    if abs(angle) > 1.0:
        logger.debug(f"Deskewing by {angle:.1f} degrees")
        gray = deskew(gray, angle)

    gray = upscale(gray, min_dimension)

    if is_low_contrast(gray):
        logger.debug("Normalizing low-contrast image")
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)

    return gray
