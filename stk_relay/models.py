from django.db import models


class MpesaTransaction(models.Model):
    """
    Outcome of one STK push, as reported by the Daraja callback.

    Rows only exist once a callback arrives: the correlation ids are
    assigned by the gateway, so a push that never gets a callback leaves
    no trace here. checkout_request_id is the upsert key.
    """

    STATUS_SUCCESSFUL = 'successful'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = (
        (STATUS_SUCCESSFUL, 'Successful'),
        (STATUS_FAILED, 'Failed'),
    )

    checkout_request_id = models.CharField(max_length=100, unique=True)
    merchant_request_id = models.CharField(max_length=100, blank=True, default='')

    result_code = models.IntegerField()
    result_desc = models.CharField(max_length=255, blank=True, default='')
    status = models.CharField(max_length=15, choices=STATUS_CHOICES)

    # Metadata only present on successful callbacks
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    mpesa_receipt_number = models.CharField(max_length=30, null=True, blank=True)
    transaction_date = models.DateTimeField(null=True, blank=True)
    phone_number = models.CharField(max_length=15, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'mpesa_transactions'

    def __str__(self):
        return f'{self.checkout_request_id} - {self.status}'
