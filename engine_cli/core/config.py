import os
from typing import Dict, Any


class Config:
    """
    Configuration manager for the relationship engine CLI.
    Prioritizes:
    1. Command line flags (applied in main)
    2. Environment variables (ENGINE_CLI_*)
    3. Defaults
    """

    DEFAULT_API_URL = "http://localhost:8000/api/v1"
    DEFAULT_TIMEOUT_SEC = 300  # discovery runs sample values and can be slow
    DEFAULT_OUTPUT_FORMAT = "table"  # json, table

    def __init__(self):
        self.api_url = os.environ.get("ENGINE_CLI_API_URL", self.DEFAULT_API_URL).rstrip("/")
        self.timeout = int(os.environ.get("ENGINE_CLI_TIMEOUT", self.DEFAULT_TIMEOUT_SEC))
        self.output_format = os.environ.get("ENGINE_CLI_OUTPUT", self.DEFAULT_OUTPUT_FORMAT)
        self.debug = os.environ.get("ENGINE_CLI_DEBUG", "false").lower() == "true"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "api_url": self.api_url,
            "timeout": self.timeout,
            "output_format": self.output_format,
            "debug": self.debug
        }


settings = Config()
