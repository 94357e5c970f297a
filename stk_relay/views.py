import logging

from django.apps import apps
from rest_framework import status
from rest_framework.exceptions import ParseError
from rest_framework.response import Response
from rest_framework.views import APIView

from . import daraja
from .callbacks import handle_callback
from .exceptions import InvalidInput, InvalidTenant

logger = logging.getLogger(__name__)


def get_registry():
    return apps.get_app_config('stk_relay').registry


def _body(request):
    return request.data if isinstance(request.data, dict) else {}


class StkPushView(APIView):
    """
    Single-tenant push: prompt the payer's phone using the default tenant.
    """

    account_reference = None
    description = None

    def post(self, request):
        data = _body(request)
        phone = data.get('phone')
        amount = data.get('amount')

        if not phone or amount in (None, ''):
            error = 'Phone number and amount are required.'
            return Response(
                {'success': False, 'message': error, 'error': error},
                status=status.HTTP_400_BAD_REQUEST,
            )

        tenant = get_registry().default
        try:
            result = daraja.initiate(
                tenant, phone, amount,
                account_reference=self.account_reference,
                description=self.description,
            )
        except InvalidInput as e:
            logger.warning(f"Rejected STK push request: {e}")
            return Response(
                {'success': False, 'message': str(e), 'error': str(e)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        if result.success:
            return Response(
                {'success': True, 'message': result.message, 'responseData': result.provider_response},
                status=status.HTTP_200_OK,
            )

        body = {'success': False, 'message': result.message, 'error': result.error.detail}
        if result.error.error_code:
            body['errorCode'] = result.error.error_code
        return Response(body, status=result.status_code)


class DonateView(StkPushView):
    account_reference = 'DONATION'
    description = 'Donation'


class ProjectStkPushView(APIView):
    """
    Multi-tenant push: credentials are picked by the project id in the URL.
    On success the gateway's acknowledgment is passed through untouched.
    """

    def post(self, request, project_id):
        data = _body(request)

        try:
            tenant = get_registry().resolve(project_id)
        except InvalidTenant:
            logger.warning(f"STK push for unknown project '{project_id}'")
            return Response({'error': 'Invalid project ID'}, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = daraja.initiate(
                tenant,
                data.get('phoneNumber'),
                data.get('amount'),
                account_reference=data.get('accountReference'),
            )
        except InvalidInput as e:
            logger.warning(f"Rejected STK push for project '{project_id}': {e}")
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        if not result.success:
            logger.error(f"STK push for project '{project_id}' failed: {result.error.detail}")
            return Response({'error': 'STK Push failed'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(result.provider_response, status=status.HTTP_200_OK)


class MpesaCallbackView(APIView):
    """
    Safaricom posts the final STK outcome here.

    Always answers 200: a non-2xx makes the gateway redeliver the callback.
    """

    def get(self, request):
        return Response({'status': 'Callback URL is active. Waiting for POST data.'}, status=status.HTTP_200_OK)

    def post(self, request):
        try:
            payload = request.data
        except ParseError:
            payload = None

        logger.info(f"Callback Received: {payload}")
        ack = handle_callback(payload)
        return Response(ack, status=status.HTTP_200_OK)
