from .api_response import discovery_response, request_id_from_request

__all__ = ["discovery_response", "request_id_from_request"]
