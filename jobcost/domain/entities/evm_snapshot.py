"""
EVM Snapshot - derived earned-value index set for a job or a portfolio.

Formulas:
- CPI = EV / AC                      (None when AC == 0)
- SPI = EV / PV                      (None when PV is missing or 0)
- CV  = EV - AC;  SV = EV - PV       (SV None when PV is missing)
- EAC = BAC / CPI                    (falls back to AC when CPI is None or 0)
- ETC = EAC - AC;  VAC = BAC - EAC
- TCPI = (BAC - EV) / (BAC - AC)     (None when BAC == AC)

Snapshots are recomputed from the ledgers on demand and never stored as a
source of truth. All monetary values in integer cents.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, List, Optional

from jobcost.money import cents_to_display, round_cents

EAC_BASIS_CPI = "cpi"
EAC_BASIS_ACTUALS = "actuals"


@dataclass(frozen=True)
class EVMSnapshot:
    bac_cents: int
    ev_cents: int
    ac_cents: int
    pv_cents: Optional[int]
    cpi: Optional[float]
    spi: Optional[float]
    cv_cents: int
    sv_cents: Optional[int]
    eac_cents: int
    etc_cents: int
    vac_cents: int
    tcpi: Optional[float]
    overall_progress_percent: Optional[float]
    eac_basis: str = EAC_BASIS_CPI
    health_status: Optional[str] = None
    job_id: Optional[int] = None
    job_code: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'job_id': self.job_id,
            'job_code': self.job_code,
            'bac_cents': self.bac_cents,
            'ev_cents': self.ev_cents,
            'ac_cents': self.ac_cents,
            'pv_cents': self.pv_cents,
            'cpi': self.cpi,
            'spi': self.spi,
            'cv_cents': self.cv_cents,
            'sv_cents': self.sv_cents,
            'eac_cents': self.eac_cents,
            'etc_cents': self.etc_cents,
            'vac_cents': self.vac_cents,
            'tcpi': self.tcpi,
            'overall_progress_percent': self.overall_progress_percent,
            'eac_basis': self.eac_basis,
            'health_status': self.health_status,
        }

    def to_display(self, no_data: str = "No Data") -> dict:
        """
        Render for dashboards. Undefined indices show as ``no_data``; so do
        EAC/ETC/VAC when they are only the actuals fallback, so a job with no
        cost history never shows a misleading zero forecast.
        """
        forecast_defined = self.eac_basis == EAC_BASIS_CPI

        def money(cents: Optional[int], defined: bool = True) -> str:
            return cents_to_display(cents) if cents is not None and defined else no_data

        def index(value: Optional[float]) -> str:
            return f"{value:.2f}" if value is not None else no_data

        return {
            'BAC': money(self.bac_cents),
            'EV': money(self.ev_cents),
            'AC': money(self.ac_cents),
            'PV': money(self.pv_cents),
            'CPI': index(self.cpi),
            'SPI': index(self.spi),
            'CV': money(self.cv_cents),
            'SV': money(self.sv_cents),
            'EAC': money(self.eac_cents, forecast_defined),
            'ETC': money(self.etc_cents, forecast_defined),
            'VAC': money(self.vac_cents, forecast_defined),
            'TCPI': index(self.tcpi),
            'Progress': (
                f"{self.overall_progress_percent:.1f}%"
                if self.overall_progress_percent is not None else no_data
            ),
        }


def calculate_evm(
    bac_cents: int,
    ev_cents: int,
    ac_cents: int,
    pv_cents: Optional[int] = None,
    job_id: Optional[int] = None,
    job_code: Optional[str] = None,
    health_classifier: Optional[Callable[[Optional[float]], Optional[str]]] = None,
) -> EVMSnapshot:
    """
    Earned Value Management (EVM) calculation.

    Args:
        bac_cents: Budget at Completion (SOV total value)
        ev_cents: Earned Value (latest approved CTD total)
        ac_cents: Actual Cost to date
        pv_cents: Planned Value, if a baseline is supplied externally
        health_classifier: maps CPI to a health label

    Returns:
        EVMSnapshot
    """
    cpi = ev_cents / ac_cents if ac_cents > 0 else None
    spi = ev_cents / pv_cents if pv_cents is not None and pv_cents > 0 else None

    if cpi is not None and cpi > 0:
        # BAC / (EV / AC) without going through a rounded float ratio
        eac_cents = round_cents(Decimal(bac_cents) * Decimal(ac_cents) / Decimal(ev_cents))
        eac_basis = EAC_BASIS_CPI
    else:
        eac_cents = ac_cents
        eac_basis = EAC_BASIS_ACTUALS

    remaining_budget = bac_cents - ac_cents
    tcpi = (bac_cents - ev_cents) / remaining_budget if remaining_budget != 0 else None
    progress = ev_cents / bac_cents * 100 if bac_cents > 0 else None

    return EVMSnapshot(
        bac_cents=bac_cents,
        ev_cents=ev_cents,
        ac_cents=ac_cents,
        pv_cents=pv_cents,
        cpi=cpi,
        spi=spi,
        cv_cents=ev_cents - ac_cents,
        sv_cents=ev_cents - pv_cents if pv_cents is not None else None,
        eac_cents=eac_cents,
        etc_cents=eac_cents - ac_cents,
        vac_cents=bac_cents - eac_cents,
        tcpi=tcpi,
        overall_progress_percent=progress,
        eac_basis=eac_basis,
        health_status=health_classifier(cpi) if health_classifier else None,
        job_id=job_id,
        job_code=job_code,
    )


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Portfolio totals plus the per-job snapshots they were summed from."""
    totals: EVMSnapshot
    jobs: List[EVMSnapshot] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'totals': self.totals.to_dict(),
            'job_count': len(self.jobs),
            'jobs': [s.to_dict() for s in self.jobs],
        }


def rollup_portfolio(
    snapshots: List[EVMSnapshot],
    health_classifier: Optional[Callable[[Optional[float]], Optional[str]]] = None,
) -> PortfolioSnapshot:
    """
    Fan-in of per-job snapshots.

    Indices are recomputed from summed BAC/EV/AC/PV rather than averaged per
    job, so small jobs cannot distort the portfolio ratios. Portfolio PV is
    only defined when every job supplied one.
    """
    jobs = sorted(snapshots, key=lambda s: (s.job_code or "", s.job_id or 0))
    pvs = [s.pv_cents for s in jobs]
    pv_total = sum(pvs) if jobs and all(pv is not None for pv in pvs) else None

    totals = calculate_evm(
        bac_cents=sum(s.bac_cents for s in jobs),
        ev_cents=sum(s.ev_cents for s in jobs),
        ac_cents=sum(s.ac_cents for s in jobs),
        pv_cents=pv_total,
        health_classifier=health_classifier,
    )
    return PortfolioSnapshot(totals=replace(totals, job_code="PORTFOLIO"), jobs=jobs)
