"""
Configuration management for the region capture job.
Centralizes all configuration values and eliminates hardcoded constants.
"""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

from region_capture.models import (
    CAPTURE_MODES,
    CROP_CLIP,
    CROP_RASTER,
    CaptureSettings,
    Padding,
    SelectorConfig,
    Theme,
)

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration class."""

    # Delivery Configuration
    SLACK_BOT_TOKEN = os.getenv('SLACK_BOT_TOKEN', '')
    CHANNEL_ID = os.getenv('CHANNEL_ID', '')
    TITLE_PREFIX = os.getenv('TITLE_PREFIX', 'Daily screenshot')
    ADD_COMMENT = _env_bool('ADD_COMMENT', 'true')
    OUTPUT_DIR = os.getenv('OUTPUT_DIR', '')

    # Targets
    TARGET_URLS = os.getenv('TARGET_URLS', '')
    CAPTURE_MODE = os.getenv('CAPTURE_MODE', 'table').strip().lower()
    HEADING_PATTERN = os.getenv('HEADING_PATTERN', '')
    MARKER_PATTERN = os.getenv('MARKER_PATTERN', '')

    # Browser Configuration
    TIMEOUT_MS = int(os.getenv('TIMEOUT_MS', 90000))
    SETTLE_TIMEOUT_MS = int(os.getenv('SETTLE_TIMEOUT_MS', 5000))
    SYNTH_TIMEOUT_MS = int(os.getenv('SYNTH_TIMEOUT_MS', 15000))
    VIEWPORT_W = int(os.getenv('VIEWPORT_W', 1366))
    VIEWPORT_H = int(os.getenv('VIEWPORT_H', 900))
    DEVICE_SCALE_FACTOR = float(os.getenv('DEVICE_SCALE_FACTOR', 2) or 1)

    # Capture Configuration
    SYNTHESIZE = os.getenv('SYNTHESIZE', 'auto').strip().lower()
    CROP_STRATEGY = os.getenv('CROP_STRATEGY', CROP_CLIP).strip().lower()
    STRIP_LINKS = _env_bool('STRIP_LINKS', 'true')
    PAD_AROUND = int(os.getenv('PAD_AROUND', 96))  # ~1 inch
    MAX_OUT_W = int(os.getenv('MAX_OUT_W', 3600))
    MAX_OUT_H = int(os.getenv('MAX_OUT_H', 10000))
    BOUNDS_SLACK = int(os.getenv('BOUNDS_SLACK', 2))

    # Appearance
    DARK_MODE = _env_bool('DARK_MODE', 'true')
    DARK_BG = os.getenv('DARK_BG', '#0b0f14')
    DARK_SURFACE = os.getenv('DARK_SURFACE', '#121821')
    DARK_TEXT = os.getenv('DARK_TEXT', '#ffffff')
    DARK_MUTED = os.getenv('DARK_MUTED', '#3a4759')
    DARK_HEADER = os.getenv('DARK_HEADER', '#1a2330')

    # File Paths
    BASE_DIR = Path(__file__).parent
    SELECTORS_PATH = Path(os.getenv('SELECTORS_PATH', BASE_DIR / 'region_capture' / 'config.yaml'))

    @classmethod
    def get_theme(cls) -> Theme:
        """Theme for synthesized captures; the light palette when dark mode is off."""
        if not cls.DARK_MODE:
            return Theme.light_default()
        return Theme(
            background=cls.DARK_BG,
            surface=cls.DARK_SURFACE,
            text=cls.DARK_TEXT,
            muted=cls.DARK_MUTED,
            header=cls.DARK_HEADER,
            dark=True,
        )

    @classmethod
    def load_selectors(cls) -> SelectorConfig:
        """Load locator selector lists from the YAML file."""
        if not cls.SELECTORS_PATH.exists():
            raise FileNotFoundError(f"Selector configuration not found at {cls.SELECTORS_PATH}")
        with open(cls.SELECTORS_PATH, 'r', encoding='utf-8') as f:
            return SelectorConfig.from_dict(yaml.safe_load(f))

    @classmethod
    def get_synthesize(cls):
        if cls.SYNTHESIZE == 'auto':
            return None
        return cls.SYNTHESIZE in ('1', 'true', 'yes', 'on')

    @classmethod
    def capture_settings(cls, **overrides) -> CaptureSettings:
        """Build the settings for one run; keyword arguments override environment values."""
        settings = CaptureSettings(
            viewport_width=cls.VIEWPORT_W,
            viewport_height=cls.VIEWPORT_H,
            device_scale_factor=cls.DEVICE_SCALE_FACTOR,
            padding=Padding.uniform(cls.PAD_AROUND),
            max_width=cls.MAX_OUT_W,
            max_height=cls.MAX_OUT_H,
            navigation_timeout_ms=cls.TIMEOUT_MS,
            settle_timeout_ms=cls.SETTLE_TIMEOUT_MS,
            synthesis_timeout_ms=cls.SYNTH_TIMEOUT_MS,
            theme=cls.get_theme(),
            mode=cls.CAPTURE_MODE,
            synthesize=cls.get_synthesize(),
            crop_strategy=cls.CROP_STRATEGY,
            strip_links=cls.STRIP_LINKS,
            heading_pattern=cls.HEADING_PATTERN or None,
            marker_pattern=cls.MARKER_PATTERN or None,
            bounds_slack=cls.BOUNDS_SLACK,
            selectors=cls.load_selectors(),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(settings, key, value)
        return settings

    @classmethod
    def validate_config(cls):
        """Validate configuration values."""
        errors = []

        if cls.CAPTURE_MODE not in CAPTURE_MODES:
            errors.append(f"CAPTURE_MODE must be one of {', '.join(CAPTURE_MODES)}")

        if cls.CROP_STRATEGY not in (CROP_CLIP, CROP_RASTER):
            errors.append(f"CROP_STRATEGY must be '{CROP_CLIP}' or '{CROP_RASTER}'")

        if cls.SYNTHESIZE not in ('auto', '1', '0', 'true', 'false', 'yes', 'no', 'on', 'off'):
            errors.append("SYNTHESIZE must be auto, true or false")

        for name in ('TIMEOUT_MS', 'SYNTH_TIMEOUT_MS', 'VIEWPORT_W', 'VIEWPORT_H', 'MAX_OUT_W', 'MAX_OUT_H'):
            if getattr(cls, name) <= 0:
                errors.append(f"{name} must be positive")

        if cls.DEVICE_SCALE_FACTOR <= 0:
            errors.append("DEVICE_SCALE_FACTOR must be positive")

        if cls.PAD_AROUND < 0:
            errors.append("PAD_AROUND cannot be negative")

        if cls.MAX_OUT_W < cls.VIEWPORT_W or cls.MAX_OUT_H < cls.VIEWPORT_H:
            errors.append("MAX_OUT_W/MAX_OUT_H cannot be smaller than the viewport")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

        return True

    @classmethod
    def validate_delivery(cls):
        """Check the values only needed when uploading to Slack."""
        missing = [name for name in ('SLACK_BOT_TOKEN', 'CHANNEL_ID') if not getattr(cls, name)]
        if missing:
            raise ValueError(f"Missing required env vars: {', '.join(missing)}")
        return True


# Create global config instance
config = Config()

# Validate configuration on import
if __name__ != '__main__':
    config.validate_config()
