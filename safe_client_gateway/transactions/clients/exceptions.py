class TransactionServiceRequestError(Exception):
    pass


class TransactionServiceNotFound(TransactionServiceRequestError):
    pass


class TransactionServiceNotConfigured(TransactionServiceRequestError):
    """
    No Transaction Service url is configured for the chain
    """
