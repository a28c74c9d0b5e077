from app.economy.errors import ExternalDependencyError, InvariantViolationError, StateError, ValidationError


class CryptoPaymentValidationError(ValidationError):
    code = "E_CRYPTO_PAYMENT_INVALID"


class UnsupportedCryptoTypeError(CryptoPaymentValidationError):
    code = "E_CRYPTO_TYPE_UNSUPPORTED"
    reason = "Unsupported cryptocurrency."


class TransactionHashFormatError(CryptoPaymentValidationError):
    code = "E_TRANSACTION_HASH_FORMAT"
    reason = "Transaction hash format is invalid."


class CryptoPaymentRequestNotFoundError(StateError):
    code = "E_CRYPTO_PAYMENT_NOT_FOUND"
    reason = "No open crypto payment request was found."


class CryptoPaymentExpiredError(StateError):
    code = "E_CRYPTO_PAYMENT_EXPIRED"
    reason = "The crypto payment request has expired."

    def __init__(self, request_id: object | None = None) -> None:
        super().__init__(self.reason)
        self.request_id = request_id


class CryptoPaymentStateError(StateError):
    code = "E_CRYPTO_PAYMENT_STATE"
    reason = "The crypto payment request is already closed."


class TransactionHashReplayError(StateError):
    code = "E_TRANSACTION_HASH_REPLAY"
    reason = "This transaction has already been used."


class ChainQueryError(ExternalDependencyError):
    code = "E_CHAIN_QUERY_FAILED"
    reason = "Could not reach the blockchain service, please retry."


class ExchangeRateUnavailableError(ExternalDependencyError):
    code = "E_EXCHANGE_RATE_UNAVAILABLE"
    reason = "Exchange rates are unavailable, please retry."


class WalletProvisioningError(ExternalDependencyError):
    code = "E_WALLET_PROVISIONING_FAILED"
    reason = "Could not allocate a wallet, please retry."


class TransactionDoubleConfirmationError(InvariantViolationError):
    code = "E_TRANSACTION_DOUBLE_CONFIRMATION"
