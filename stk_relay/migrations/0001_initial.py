from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='MpesaTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('checkout_request_id', models.CharField(max_length=100, unique=True)),
                ('merchant_request_id', models.CharField(blank=True, default='', max_length=100)),
                ('result_code', models.IntegerField()),
                ('result_desc', models.CharField(blank=True, default='', max_length=255)),
                (
                    'status',
                    models.CharField(
                        choices=[('successful', 'Successful'), ('failed', 'Failed')],
                        max_length=15,
                    ),
                ),
                ('amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('mpesa_receipt_number', models.CharField(blank=True, max_length=30, null=True)),
                ('transaction_date', models.DateTimeField(blank=True, null=True)),
                ('phone_number', models.CharField(blank=True, max_length=15, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('processed_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'mpesa_transactions',
            },
        ),
    ]
