"""
Pydantic schemas for loan snapshots and reschedule requests

Wire and storage forms of the engine inputs. Decimals travel as strings,
enums as their values; to_domain() builds the validated domain objects.
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from .currency import Money, Currency
from .rate_factor import DaysInYearType
from .reschedule import RescheduleRequest
from .terms import (
    AmortizationMethod, CapitalizedIncomeStrategy, LoanSnapshot, LoanStatus, LoanTerms,
    LoanTransaction, LoanTransactionType, PaymentFrequency, TermVariation, TermVariationType
)


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (USD, EUR, etc.)")
    rounding: Optional[str] = Field(None, description="Decimal rounding mode name, e.g. ROUND_HALF_EVEN")

    def to_money(self) -> Money:
        return Money(Decimal(self.amount), Currency.from_code(self.currency), self.rounding)

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code, rounding=money.rounding)


def _money_or_none(model: Optional[MoneyModel]) -> Optional[Money]:
    return model.to_money() if model is not None else None


def _model_or_none(money: Optional[Money]) -> Optional[MoneyModel]:
    return MoneyModel.from_money(money) if money is not None else None


class TermVariationModel(BaseModel):
    variation_type: str = Field(..., description="due_date, interest_rate, interest_pause, principal_pause, "
                                                 "extend_repayment_period")
    applicable_from: date
    date_value: Optional[date] = None
    decimal_value: Optional[str] = None  # Decimal as string

    def to_domain(self) -> TermVariation:
        return TermVariation(
            variation_type=TermVariationType(self.variation_type),
            applicable_from=self.applicable_from,
            date_value=self.date_value,
            decimal_value=Decimal(self.decimal_value) if self.decimal_value is not None else None
        )

    @classmethod
    def from_domain(cls, variation: TermVariation) -> 'TermVariationModel':
        return cls(
            variation_type=variation.variation_type.value,
            applicable_from=variation.applicable_from,
            date_value=variation.date_value,
            decimal_value=str(variation.decimal_value) if variation.decimal_value is not None else None
        )


class LoanTransactionModel(BaseModel):
    id: Optional[str] = None
    transaction_type: str = Field(..., description="disbursement, repayment, chargeback, capitalized_income, "
                                                    "balance_correction")
    transaction_date: date
    amount: MoneyModel
    principal_portion: Optional[MoneyModel] = None
    interest_portion: Optional[MoneyModel] = None

    def to_domain(self) -> LoanTransaction:
        transaction = LoanTransaction(
            transaction_type=LoanTransactionType(self.transaction_type),
            transaction_date=self.transaction_date,
            amount=self.amount.to_money(),
            principal_portion=_money_or_none(self.principal_portion),
            interest_portion=_money_or_none(self.interest_portion)
        )
        if self.id:
            transaction.id = self.id
        return transaction

    @classmethod
    def from_domain(cls, transaction: LoanTransaction) -> 'LoanTransactionModel':
        return cls(
            id=transaction.id,
            transaction_type=transaction.transaction_type.value,
            transaction_date=transaction.transaction_date,
            amount=MoneyModel.from_money(transaction.amount),
            principal_portion=_model_or_none(transaction.principal_portion),
            interest_portion=_model_or_none(transaction.interest_portion)
        )


class LoanTermsModel(BaseModel):
    principal_amount: MoneyModel
    annual_nominal_rate: str = Field(..., description="Annual rate in percent as string, e.g. '12.5'")
    number_of_installments: int
    payment_frequency: str = Field(..., description="daily, weekly, bi_weekly, monthly, quarterly, "
                                                    "semi_annually, annually")
    disbursement_date: date
    first_payment_date: Optional[date] = None
    repayment_every: int = 1
    days_in_year_type: Optional[str] = Field(None, description="days_360, days_364, days_365 or actual")
    amortization_method: str = AmortizationMethod.EQUAL_INSTALLMENT.value
    capitalized_income_strategy: Optional[str] = None
    term_variations: List[TermVariationModel] = Field(default_factory=list)

    def to_domain(self) -> LoanTerms:
        return LoanTerms(
            principal_amount=self.principal_amount.to_money(),
            annual_nominal_rate=Decimal(self.annual_nominal_rate),
            number_of_installments=self.number_of_installments,
            payment_frequency=PaymentFrequency(self.payment_frequency),
            disbursement_date=self.disbursement_date,
            first_payment_date=self.first_payment_date,
            repayment_every=self.repayment_every,
            days_in_year_type=DaysInYearType.from_code(self.days_in_year_type) if self.days_in_year_type else None,
            amortization_method=AmortizationMethod(self.amortization_method),
            capitalized_income_strategy=CapitalizedIncomeStrategy(self.capitalized_income_strategy)
            if self.capitalized_income_strategy else None,
            term_variations=[v.to_domain() for v in self.term_variations]
        )

    @classmethod
    def from_domain(cls, terms: LoanTerms) -> 'LoanTermsModel':
        return cls(
            principal_amount=MoneyModel.from_money(terms.principal_amount),
            annual_nominal_rate=str(terms.annual_nominal_rate),
            number_of_installments=terms.number_of_installments,
            payment_frequency=terms.payment_frequency.value,
            disbursement_date=terms.disbursement_date,
            first_payment_date=terms.first_payment_date,
            repayment_every=terms.repayment_every,
            days_in_year_type=terms.days_in_year_type.code,
            amortization_method=terms.amortization_method.value,
            capitalized_income_strategy=terms.capitalized_income_strategy.value,
            term_variations=[TermVariationModel.from_domain(v) for v in terms.term_variations]
        )


class LoanSnapshotModel(BaseModel):
    loan_id: str
    terms: LoanTermsModel
    transactions: List[LoanTransactionModel] = Field(default_factory=list)
    business_date: Optional[date] = None
    status: str = LoanStatus.ACTIVE.value
    maturity_date: Optional[date] = None
    closed_on_date: Optional[date] = None
    overpaid_on_date: Optional[date] = None
    written_off_on_date: Optional[date] = None
    charged_off_on_date: Optional[date] = None

    def to_domain(self) -> LoanSnapshot:
        return LoanSnapshot(
            loan_id=self.loan_id,
            terms=self.terms.to_domain(),
            transactions=[t.to_domain() for t in self.transactions],
            business_date=self.business_date,
            status=LoanStatus(self.status),
            maturity_date=self.maturity_date,
            closed_on_date=self.closed_on_date,
            overpaid_on_date=self.overpaid_on_date,
            written_off_on_date=self.written_off_on_date,
            charged_off_on_date=self.charged_off_on_date
        )

    @classmethod
    def from_domain(cls, snapshot: LoanSnapshot) -> 'LoanSnapshotModel':
        return cls(
            loan_id=snapshot.loan_id,
            terms=LoanTermsModel.from_domain(snapshot.terms),
            transactions=[LoanTransactionModel.from_domain(t) for t in snapshot.transactions],
            business_date=snapshot.business_date,
            status=snapshot.status.value,
            maturity_date=snapshot.maturity_date,
            closed_on_date=snapshot.closed_on_date,
            overpaid_on_date=snapshot.overpaid_on_date,
            written_off_on_date=snapshot.written_off_on_date,
            charged_off_on_date=snapshot.charged_off_on_date
        )


class RescheduleRequestModel(BaseModel):
    id: Optional[str] = None
    loan_id: str
    reschedule_from_date: date
    term_variations: List[TermVariationModel] = Field(default_factory=list)
    reason: Optional[str] = None

    def to_domain(self) -> RescheduleRequest:
        request = RescheduleRequest(
            loan_id=self.loan_id,
            reschedule_from_date=self.reschedule_from_date,
            term_variations=[v.to_domain() for v in self.term_variations],
            reason=self.reason
        )
        if self.id:
            request.id = self.id
        return request

    @classmethod
    def from_domain(cls, request: RescheduleRequest) -> 'RescheduleRequestModel':
        return cls(
            id=request.id,
            loan_id=request.loan_id,
            reschedule_from_date=request.reschedule_from_date,
            term_variations=[TermVariationModel.from_domain(v) for v in request.term_variations],
            reason=request.reason
        )
