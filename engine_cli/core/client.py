import json
import urllib.request
import urllib.error
import sys
from typing import Dict, Any, Optional
from engine_cli.core.config import settings


class APIClient:
    """
    HTTP client for the relationship engine API, built on the standard library.
    Errors are printed and terminate the CLI with exit code 1.
    """

    def __init__(self):
        self.headers = {
            "Content-Type": "application/json",
            "User-Agent": "RelationshipEngine-CLI/0.1.0",
            "Accept": "application/json"
        }

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        # Read at call time so --url overrides apply
        url = f"{settings.api_url}{path}"
        data = None
        if payload is not None:
            data = json.dumps(payload).encode('utf-8')

        req = urllib.request.Request(url, data=data, headers=self.headers, method=method)

        if settings.debug:
            print(f"[DEBUG] {method} {url}", file=sys.stderr)
            if payload is not None:
                print(f"[DEBUG] Payload: {json.dumps(payload)}", file=sys.stderr)

        try:
            with urllib.request.urlopen(req, timeout=settings.timeout) as response:
                response_data = response.read().decode('utf-8')
                if not response_data:
                    return None
                return json.loads(response_data)

        except urllib.error.HTTPError as e:
            self._handle_error(e)
        except urllib.error.URLError as e:
            print(f"Connection Error: {e.reason}", file=sys.stderr)
            print(f"   URL: {url}", file=sys.stderr)
            sys.exit(1)
        except json.JSONDecodeError:
            print("Error: Invalid JSON response from server", file=sys.stderr)
            sys.exit(1)

    def _handle_error(self, e: urllib.error.HTTPError):
        """Print the FastAPI error detail if the body carries one"""
        code = e.code
        try:
            error_body = e.read().decode('utf-8')
            detail = json.loads(error_body).get("detail", error_body)
        except (ValueError, AttributeError):
            detail = e.reason

        print(f"API Error ({code}): {detail}", file=sys.stderr)
        sys.exit(1)

    def post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("POST", path, payload if payload is not None else {})

    def get(self, path: str) -> Any:
        return self._request("GET", path)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)


client = APIClient()
