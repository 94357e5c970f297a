import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import alerts

logger = logging.getLogger(__name__)


class EmergencyAlertView(APIView):
    """Text every emergency contact and the dispatch line."""

    def post(self, request):
        data = request.data if isinstance(request.data, dict) else {}
        body = alerts.build_message(data.get('userName'), data.get('location'))
        recipients = alerts.get_recipients()

        logger.warning(
            f"Emergency alert from {data.get('userPhone') or 'unknown phone'}; "
            f"notifying {len(recipients)} recipient(s)"
        )

        try:
            client, from_number = alerts.build_client()
            sent = alerts.send_batch(client, from_number, recipients, body)
        except (alerts.NotificationConfigError, alerts.NotificationBatchError) as e:
            return Response({'success': False, 'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({'success': True, 'sent': sent}, status=status.HTTP_200_OK)
