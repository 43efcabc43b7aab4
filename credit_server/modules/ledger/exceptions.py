from credit_server.core.exceptions import NotFoundError


class TransactionNotFoundError(NotFoundError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"transaction {transaction_id} not found", transaction_id=transaction_id)
        self.transaction_id = transaction_id
