from circuito.modules.integrations.bcra import BcraCreditBureau
from circuito.modules.integrations.ports import CreditBureau


def get_credit_bureau() -> CreditBureau:
    return BcraCreditBureau()
