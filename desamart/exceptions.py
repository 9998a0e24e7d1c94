"""
Error taxonomy shared by the order, courier and quota services.

Services raise these; the DRF exception handler below turns them into
``{"error": ..., "code": ...}`` responses.
"""
import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class MarketplaceError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Permintaan tidak dapat diproses.'
    default_code = 'marketplace_error'


class PreconditionFailed(MarketplaceError):
    """A transition was attempted from a state that does not allow it."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Status pesanan tidak memungkinkan tindakan ini.'
    default_code = 'precondition_failed'


class NotEligible(MarketplaceError):
    """A courier or merchant fails an eligibility predicate."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = 'Tidak memenuhi syarat.'
    default_code = 'not_eligible'


class CapabilityDenied(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Anda tidak memiliki akses untuk tindakan ini.'
    default_code = 'capability_denied'


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Data tidak ditemukan.'
    default_code = 'not_found'


class StoreUnavailable(MarketplaceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Terjadi gangguan, silakan coba lagi.'
    default_code = 'store_unavailable'


def api_exception_handler(exc, context):
    if isinstance(exc, DatabaseError):
        logger.exception("Store error while handling %s", context.get('view'))
        exc = StoreUnavailable()

    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, MarketplaceError):
        response.data = {
            'error': str(exc.detail),
            'code': exc.default_code,
        }
    return response
