from app.economy.errors import StateError, ValidationError


class VoucherCodeFormatError(ValidationError):
    code = "E_VOUCHER_CODE_FORMAT"
    reason = "Voucher code format is invalid."


class VoucherDefinitionError(ValidationError):
    code = "E_VOUCHER_DEFINITION_INVALID"


class VoucherIdempotencyKeyError(ValidationError):
    code = "E_VOUCHER_IDEMPOTENCY_KEY"
    reason = "Idempotency key must be 1 to 96 characters."


class VoucherNotFoundError(StateError):
    code = "E_VOUCHER_NOT_FOUND"
    reason = "Voucher code not found or inactive."


class VoucherExpiredError(StateError):
    code = "E_VOUCHER_EXPIRED"
    reason = "Voucher code has expired."


class VoucherExhaustedError(StateError):
    code = "E_VOUCHER_EXHAUSTED"
    reason = "Voucher code has reached its maximum uses."


class PerUserLimitReachedError(StateError):
    code = "E_VOUCHER_PER_USER_LIMIT"
    reason = "You have already used this voucher code."


class TierRestrictedError(StateError):
    code = "E_VOUCHER_TIER_RESTRICTED"
    reason = "This voucher is not available for your tier."


class ReferralSelfRedeemError(StateError):
    code = "E_REFERRAL_SELF_REDEEM"
    reason = "You cannot redeem your own referral code."


class VoucherCodeTakenError(StateError):
    code = "E_VOUCHER_CODE_TAKEN"
    reason = "Voucher code already exists."


class DiscountNotApplicableError(StateError):
    code = "E_DISCOUNT_NOT_APPLICABLE"
    reason = "The discount cannot be applied to this payment."


class VoucherIdempotencyConflictError(StateError):
    code = "E_VOUCHER_IDEMPOTENCY_CONFLICT"
    reason = "Idempotency key was already used for a different voucher code."
