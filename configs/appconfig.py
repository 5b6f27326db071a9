# Application Configuration
# Centralized defaults for the statics engine
from pathlib import Path


class AppConfig:
    """Centralized application configuration"""

    USER_DIR = Path(__file__).parent.parent / "user"
    EXPORT_DIR = USER_DIR / "statics"

    # Physics
    GRAVITY = 9.81  # m/s^2

    # Numerical tolerances
    INTERSECTION_TOLERANCE = 1e-6
    LEVER_ARM_TOLERANCE = 1e-6

    # Kinematic sampling
    DEFAULT_N_STEPS = 360

    @classmethod
    def get_export_dir(cls):
        return cls.EXPORT_DIR

    @classmethod
    def get_default_csv_path(cls, name: str = "statics"):
        return cls.EXPORT_DIR / f"{name}.csv"


# For easy imports
USER_DIR = AppConfig.USER_DIR
EXPORT_DIR = AppConfig.EXPORT_DIR
GRAVITY = AppConfig.GRAVITY
INTERSECTION_TOLERANCE = AppConfig.INTERSECTION_TOLERANCE
LEVER_ARM_TOLERANCE = AppConfig.LEVER_ARM_TOLERANCE
DEFAULT_N_STEPS = AppConfig.DEFAULT_N_STEPS
