"""
SQL Server capability model
"""

from dataclasses import dataclass

from indexhealth.core.constants import (
    SQL_SERVER_VERSIONS,
    AZURE_ENGINE_EDITIONS,
    ENTERPRISE_EDITION_MARKERS,
    ServerVersion,
)


@dataclass(frozen=True)
class ServerCapabilities:
    """
    Read-only server capability snapshot, loaded once per connection.

    The availability flags are plain fields so callers (and tests) may set
    them directly; `from_server_properties` derives them from SERVERPROPERTY
    values.
    """

    major_version: int = ServerVersion.SQL2016
    edition: str = ""
    engine_edition: int = 0  # 1=Personal, 2=Standard, 3=Enterprise, 4=Express, 5=Azure DB
    product_level: str = ""  # RTM, SP1, ...
    is_sysadmin: bool = False

    is_columnstore_available: bool = False
    is_online_rebuild_available: bool = False
    is_compression_available: bool = False

    @classmethod
    def from_server_properties(
        cls,
        major_version: int,
        edition: str = "",
        engine_edition: int = 0,
        product_level: str = "",
        is_sysadmin: bool = False,
    ) -> 'ServerCapabilities':
        is_azure = engine_edition in AZURE_ENGINE_EDITIONS
        is_enterprise = any(marker in (edition or "") for marker in ENTERPRISE_EDITION_MARKERS)
        # 2016 SP1 opened compression and columnstore to every edition
        is_2016_sp1_plus = (
            major_version > ServerVersion.SQL2016
            or (major_version == ServerVersion.SQL2016 and (product_level or "RTM").upper() != "RTM")
        )

        online = is_azure or is_enterprise
        return cls(
            major_version=major_version,
            edition=edition or "",
            engine_edition=engine_edition,
            product_level=product_level or "",
            is_sysadmin=is_sysadmin,
            is_online_rebuild_available=online,
            is_compression_available=online or is_2016_sp1_plus,
            is_columnstore_available=(
                major_version >= ServerVersion.SQL2012 and (online or is_2016_sp1_plus)
            ),
        )

    @property
    def is_azure(self) -> bool:
        return self.engine_edition in AZURE_ENGINE_EDITIONS

    @property
    def is_legacy_tier(self) -> bool:
        """Oldest supported tier: any LOB column blocks online rebuild"""
        return self.major_version <= ServerVersion.SQL2008

    @property
    def friendly_name(self) -> str:
        return SQL_SERVER_VERSIONS.get(self.major_version, f"SQL Server (v{self.major_version})")

    def get_version_string(self) -> str:
        parts = [self.friendly_name]
        if self.product_level:
            parts.append(f"({self.product_level})")
        if self.is_azure:
            parts.append("- Azure")
        elif self.edition:
            parts.append(f"- {self.edition}")
        return " ".join(parts)
