"""services package"""

__all__ = [
    "fee_audit",
    "fee_calculator",
    "fee_errors",
    "fee_ledger_service",
    "fee_report_service",
    "fee_status",
    "fee_store",
    "fee_structure_service",
    "fee_validation",
    "finance_settings_service",
    "money",
    "payment_service",
    "receipt_number_generator",
    "structure_resolver",
]
