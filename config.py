import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Configuration class for the Weather Risk Engine"""

    # Weather Data Sources
    AVIATION_WEATHER_API = os.getenv('AVIATION_WEATHER_API', 'https://aviationweather.gov/api/data')
    CHECKWX_API = os.getenv('CHECKWX_API', 'https://api.checkwx.com')
    CHECKWX_API_KEY = os.getenv('CHECKWX_API_KEY', '')  # Optional primary source for decoded data
    OPENFLIGHTS_AIRPORTS_URL = 'https://raw.githubusercontent.com/jpatokal/openflights/master/data/airports.dat'

    # Network
    REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '15'))  # seconds
    AIRPORT_TIMEOUT = 10
    PIREP_RADIUS_NM = int(os.getenv('PIREP_RADIUS_NM', '50'))
    HAZARD_RADIUS_NM = int(os.getenv('HAZARD_RADIUS_NM', '300'))
    METAR_HISTORY_HOURS = 3

    # Cache Configuration
    CACHE_TIMEOUT = timedelta(minutes=5)  # METAR
    TAF_CACHE_TIMEOUT = timedelta(minutes=30)
    HAZARD_CACHE_TIMEOUT = timedelta(minutes=10)
    AIRPORT_CACHE_TIMEOUT = timedelta(hours=24)

    # Risk engine
    DEPARTURE_WINDOW = timedelta(minutes=int(os.getenv('DEPARTURE_WINDOW_MINUTES', '60')))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
