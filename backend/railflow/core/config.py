import os
import logging
from dotenv import load_dotenv

# Reload .env file to pick up changes
load_dotenv(override=True)  # override=True ensures new values replace old ones

logger = logging.getLogger(__name__)


def _float_env(name: str, default: float) -> float:
	raw = os.getenv(name)
	if raw is None or raw.strip() == "":
		return default
	try:
		return float(raw)
	except ValueError:
		logger.warning(f"Invalid value for {name}={raw!r}; using default {default}")
		return default


class Settings:
	APP_NAME: str = os.getenv("APP_NAME", "RailFlow Twin")
	ENV: str = os.getenv("ENV", "dev")
	API_PREFIX: str = os.getenv("API_PREFIX", "/api")
	CORS_ALLOW_ORIGINS: str | None = os.getenv("CORS_ALLOW_ORIGINS")

	# Virtual clock
	SIM_START_TIME: str = os.getenv("SIM_START_TIME", "08:00")
	TIME_MULTIPLIER: float = _float_env("TIME_MULTIPLIER", 60.0)  # 1 real second = 1 simulated minute
	TICK_INTERVAL_SECONDS: float = _float_env("TICK_INTERVAL_SECONDS", 1.0 / 60.0)

	# Train motion calibration
	BASE_PROGRESS_RATE: float = _float_env("BASE_PROGRESS_RATE", 0.0002)
	REFERENCE_SPEED: float = _float_env("REFERENCE_SPEED", 100.0)
	SPLINE_TENSION: float = _float_env("SPLINE_TENSION", 0.5)
	DISTANCE_UNIT_TO_KM: float = _float_env("DISTANCE_UNIT_TO_KM", 0.5)

	# Disruption handling
	REROUTE_START_THRESHOLD: float = _float_env("REROUTE_START_THRESHOLD", 0.1)
	DELAY_REPORT_MINUTES: float = _float_env("DELAY_REPORT_MINUTES", 15.0)

	# External recommender (unset -> in-process rule-based engine)
	RECOMMENDER_URL: str | None = os.getenv("RECOMMENDER_URL")
	RECOMMENDER_TIMEOUT_SECONDS: float = _float_env("RECOMMENDER_TIMEOUT_SECONDS", 30.0)

	NETWORK_DATA_DIR: str | None = os.getenv("NETWORK_DATA_DIR")

	def __init__(self):
		"""Validate simulation configuration on initialization"""
		self._validate_simulation_config()

	def _validate_simulation_config(self):
		"""Validate calibration values and log warnings"""
		if self.REFERENCE_SPEED <= 0:
			logger.warning(f"REFERENCE_SPEED must be positive (got {self.REFERENCE_SPEED}); using 100")
			self.REFERENCE_SPEED = 100.0
		if not 0.0 <= self.REROUTE_START_THRESHOLD <= 1.0:
			logger.warning(
				f"REROUTE_START_THRESHOLD must lie in [0, 1] (got {self.REROUTE_START_THRESHOLD}); using 0.1"
			)
			self.REROUTE_START_THRESHOLD = 0.1
		if self.TICK_INTERVAL_SECONDS <= 0:
			logger.warning(f"TICK_INTERVAL_SECONDS must be positive (got {self.TICK_INTERVAL_SECONDS}); using 1/60")
			self.TICK_INTERVAL_SECONDS = 1.0 / 60.0
		if self.RECOMMENDER_URL:
			logger.info("RECOMMENDER_URL is set (plans requested from external recommender)")
		else:
			logger.info("RECOMMENDER_URL is not set. Using the rule-based recommender.")

	@property
	def start_hour_minute(self) -> tuple[int, int]:
		try:
			hh, mm = self.SIM_START_TIME.split(":")
			return int(hh), int(mm)
		except ValueError:
			logger.warning(f"Invalid SIM_START_TIME {self.SIM_START_TIME!r}; using 08:00")
			return 8, 0

	@property
	def cors_origins(self) -> list[str]:
		if self.CORS_ALLOW_ORIGINS:
			return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
		return ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]


settings = Settings()
