"""Статические реестры стейблкоинов и платформ.

Загружаются один раз при старте и дальше только читаются. Цена и скор
считаются на каждый запрос и обратно в реестр не пишутся.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

BackingModel = Literal["fiat-backed", "crypto-collateralized", "yield-bearing", "hybrid"]
ComplianceSignal = Literal["yes", "likely", "no", "unknown"]
PlatformType = Literal["cefi", "defi"]
ProofOfReserves = Literal["full", "partial", "none"]
LicenseCoverage = Literal["broad", "moderate", "limited"]


@dataclass(slots=True, frozen=True)
class StablecoinRecord:
    symbol: str
    name: str
    issuer: str
    jurisdiction: str
    auditor: str
    model: BackingModel
    compliance: ComplianceSignal
    price_id: str
    chains: tuple[str, ...] = ()
    status: str = "live"
    depeg_incidents: int = 0

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["chains"] = list(self.chains)
        data.pop("price_id")
        return data


@dataclass(slots=True, frozen=True)
class CeFiAttributes:
    kyc_aml: bool
    proof_of_reserves: ProofOfReserves
    independent_audit: bool
    license_coverage: LicenseCoverage
    security_audit: bool
    enforcement_events: int = 0
    licenses: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class DeFiAttributes:
    onchain_transparency: bool
    audit_count: int
    formal_verification: bool
    algorithmic_risk: bool
    depeg_incident: bool = False
    auditors: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class PlatformRecord:
    name: str
    type: PlatformType
    region: str
    notes: str
    cefi: CeFiAttributes | None = None
    defi: DeFiAttributes | None = None

    def __post_init__(self) -> None:
        if (self.type == "cefi") != (self.cefi is not None) or (self.type == "defi") != (self.defi is not None):
            raise ValueError(f"Платформа {self.name}: атрибуты не соответствуют типу {self.type}")

    def as_dict(self) -> dict[str, Any]:
        attrs = asdict(self.cefi if self.cefi is not None else self.defi)
        for key in ("licenses", "auditors"):
            if key in attrs:
                attrs[key] = list(attrs[key])
        return {"name": self.name, "type": self.type, "region": self.region, "notes": self.notes, **attrs}


SEEDED_STABLECOINS: tuple[StablecoinRecord, ...] = (
    StablecoinRecord(
        symbol="USDC", name="USD Coin", issuer="Circle", jurisdiction="US (MSB) / EU EMI",
        auditor="Grant Thornton", model="fiat-backed", compliance="yes", price_id="usd-coin",
        chains=("Ethereum", "Base", "Solana", "Arbitrum", "Polygon"),
    ),
    StablecoinRecord(
        symbol="USDT", name="Tether", issuer="Tether", jurisdiction="Offshore",
        auditor="BDO", model="fiat-backed", compliance="likely", price_id="tether",
        chains=("Ethereum", "Tron", "Arbitrum", "BSC", "Polygon"),
    ),
    StablecoinRecord(
        symbol="DAI", name="DAI", issuer="MakerDAO", jurisdiction="Decentralized",
        auditor="Withum", model="crypto-collateralized", compliance="yes", price_id="dai",
        chains=("Ethereum", "Layer2"),
    ),
    StablecoinRecord(
        symbol="sDAI", name="Savings DAI", issuer="MakerDAO", jurisdiction="Decentralized",
        auditor="Withum", model="yield-bearing", compliance="yes", price_id="savings-dai",
        chains=("Ethereum",),
    ),
    StablecoinRecord(
        symbol="FRAX", name="Frax", issuer="Frax", jurisdiction="US (MSB)",
        auditor="Withum", model="hybrid", compliance="likely", price_id="frax",
        chains=("Ethereum", "Fraxtal", "Arbitrum"),
    ),
    StablecoinRecord(
        symbol="PYUSD", name="PayPal USD", issuer="PayPal (via Paxos)", jurisdiction="NYDFS",
        auditor="Withum", model="fiat-backed", compliance="yes", price_id="paypal-usd",
        chains=("Ethereum", "Solana"),
    ),
    StablecoinRecord(
        symbol="GHO", name="GHO", issuer="Aave", jurisdiction="Decentralized",
        auditor="Various", model="crypto-collateralized", compliance="likely", price_id="gho",
        chains=("Ethereum",),
    ),
    StablecoinRecord(
        symbol="RLUSD", name="Ripple USD (announced)", issuer="Ripple", jurisdiction="US",
        auditor="TBD", model="fiat-backed", compliance="likely", price_id="ripple-usd",
        chains=("XRPL", "Ethereum"), status="announced",
    ),
)

SEEDED_PLATFORMS: tuple[PlatformRecord, ...] = (
    PlatformRecord(
        name="Coinbase", type="cefi", region="US (NYDFS/FinCEN MSB)",
        notes="High regulatory transparency in US",
        cefi=CeFiAttributes(
            kyc_aml=True, proof_of_reserves="full", independent_audit=True,
            license_coverage="broad", security_audit=True, licenses=("NY BitLicense", "MSB"),
        ),
    ),
    PlatformRecord(
        name="Kraken", type="cefi", region="US/EU (various)", notes="Strong compliance posture",
        cefi=CeFiAttributes(
            kyc_aml=True, proof_of_reserves="full", independent_audit=True,
            license_coverage="moderate", security_audit=True, licenses=("MSB", "EU VASP"),
        ),
    ),
    PlatformRecord(
        name="Gemini", type="cefi", region="US (NYDFS)", notes="US-regulated trust company",
        cefi=CeFiAttributes(
            kyc_aml=True, proof_of_reserves="full", independent_audit=True,
            license_coverage="moderate", security_audit=True, licenses=("NY BitLicense", "Trust company"),
        ),
    ),
    PlatformRecord(
        name="Bitstamp", type="cefi", region="EU/Global", notes="Long operating history",
        cefi=CeFiAttributes(
            kyc_aml=True, proof_of_reserves="partial", independent_audit=True,
            license_coverage="moderate", security_audit=False, licenses=("EU VASP",),
        ),
    ),
    PlatformRecord(
        name="Binance", type="cefi", region="Global", notes="Regulatory actions/settlements noted",
        cefi=CeFiAttributes(
            kyc_aml=True, proof_of_reserves="partial", independent_audit=False,
            license_coverage="limited", security_audit=True, enforcement_events=2,
            licenses=("Local registrations vary",),
        ),
    ),
    PlatformRecord(
        name="OKX", type="cefi", region="Global", notes="Offshore entity",
        cefi=CeFiAttributes(
            kyc_aml=True, proof_of_reserves="partial", independent_audit=False,
            license_coverage="limited", security_audit=True, enforcement_events=1,
            licenses=("Local registrations vary",),
        ),
    ),
    PlatformRecord(
        name="Aave", type="defi", region="Ethereum/Multichain", notes="Governance & oracle risks",
        defi=DeFiAttributes(
            onchain_transparency=True, audit_count=3, formal_verification=True, algorithmic_risk=False,
            auditors=("Trail of Bits", "OpenZeppelin", "Certora"),
        ),
    ),
    PlatformRecord(
        name="Compound", type="defi", region="Ethereum", notes="Governance & oracle risks",
        defi=DeFiAttributes(
            onchain_transparency=True, audit_count=2, formal_verification=False, algorithmic_risk=False,
            auditors=("OpenZeppelin", "Trail of Bits"),
        ),
    ),
    PlatformRecord(
        name="Curve", type="defi", region="Ethereum/Multichain", notes="AMM-specific risks; past incidents",
        defi=DeFiAttributes(
            onchain_transparency=True, audit_count=2, formal_verification=False, algorithmic_risk=False,
            auditors=("Trail of Bits", "MixBytes"),
        ),
    ),
    PlatformRecord(
        name="MakerDAO", type="defi", region="Ethereum", notes="Protocol & collateral risks",
        defi=DeFiAttributes(
            onchain_transparency=True, audit_count=2, formal_verification=True, algorithmic_risk=False,
            depeg_incident=True, auditors=("Runtime Verification", "Trail of Bits"),
        ),
    ),
    PlatformRecord(
        name="Frax", type="defi", region="Ethereum/Fraxtal", notes="Protocol risks",
        defi=DeFiAttributes(
            onchain_transparency=True, audit_count=2, formal_verification=True, algorithmic_risk=True,
            auditors=("Trail of Bits", "Certora"),
        ),
    ),
)


@dataclass(slots=True)
class Registry:
    """Неизменяемые после старта реестры."""

    stablecoins: tuple[StablecoinRecord, ...] = SEEDED_STABLECOINS
    platforms: tuple[PlatformRecord, ...] = SEEDED_PLATFORMS
    _by_symbol: dict[str, StablecoinRecord] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_symbol = {}
        for record in self.stablecoins:
            key = record.symbol.upper()
            if key in self._by_symbol:
                raise ValueError(f"Символ {record.symbol} встречается в реестре дважды")
            self._by_symbol[key] = record
        seen: set[tuple[str, str]] = set()
        for platform in self.platforms:
            key = (platform.type, platform.name.lower())
            if key in seen:
                raise ValueError(f"Платформа {platform.name} ({platform.type}) встречается дважды")
            seen.add(key)

    def find_stablecoin(self, symbol: str) -> StablecoinRecord | None:
        return self._by_symbol.get(symbol.upper())

    def find_platform(self, name: str) -> PlatformRecord | None:
        wanted = name.lower()
        for platform in self.platforms:
            if platform.name.lower() == wanted:
                return platform
        return None

    def price_ids(self) -> dict[str, str]:
        return {record.symbol: record.price_id for record in self.stablecoins}


__all__ = [
    "CeFiAttributes",
    "DeFiAttributes",
    "PlatformRecord",
    "Registry",
    "SEEDED_PLATFORMS",
    "SEEDED_STABLECOINS",
    "StablecoinRecord",
]
