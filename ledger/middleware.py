# ledger/middleware.py
import logging

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        logger.info('%s %s - Origin: %s', request.method, request.path, request.headers.get('Origin'))
        response = self.get_response(request)
        logger.debug('%s %s -> %s', request.method, request.path, response.status_code)
        return response
