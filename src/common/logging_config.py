# logging conf of the speed monitor and its tools
import logging
import sys
import os
from dotenv import load_dotenv

# load environment variables from .env file
load_dotenv()


def setup_logging(service_name: str = "speed-monitor"):
    # configure logging for a service.
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    # convert string to logging level
    numeric_level = getattr(logging, log_level, logging.INFO)

    # limit lookups run on worker threads, keep the thread in every line
    logging.basicConfig(
        level=numeric_level,
        format=f'%(asctime)s - [{service_name}] - %(threadName)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # urllib3 logs every mirror request at DEBUG
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.INFO))
    return logging.getLogger(service_name)
