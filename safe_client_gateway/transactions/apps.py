from django.apps import AppConfig


class TransactionsConfig(AppConfig):
    name = "safe_client_gateway.transactions"
    verbose_name = "Safe Client Gateway Transactions"
