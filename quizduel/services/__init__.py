"""Service layer."""
from quizduel.services.transaction_service import TransactionService

__all__ = ["TransactionService"]
