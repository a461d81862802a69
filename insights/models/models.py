"""Read models for the tables the reporting core aggregates.

These tables are owned and written by the CRUD application; the mappings here
only describe the columns the aggregators read.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from insights.db.base_class import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    status: Mapped[str | None] = mapped_column(String(60), nullable=True)
    utm_source: Mapped[str | None] = mapped_column(String(120), nullable=True)
    date_rdv: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Project(Base):
    __tablename__ = "projects"
    __snapshot_relations__ = ("project_products",)

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True)
    project_ref: Mapped[str | None] = mapped_column(String(40), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_first_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    client_last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    status: Mapped[str | None] = mapped_column(String(60), nullable=True)
    building_type: Mapped[str | None] = mapped_column(String(60), nullable=True)
    surface_isolee_m2: Mapped[float | None] = mapped_column(Float, nullable=True)
    surface_batiment_m2: Mapped[float | None] = mapped_column(Float, nullable=True)
    product_cee_categories: Mapped[str | None] = mapped_column(String(120), nullable=True)
    date_debut_prevue: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    date_fin_prevue: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    project_products: Mapped[list[ProjectProduct]] = relationship(back_populates="project")


class ProductCatalog(Base):
    __tablename__ = "product_catalog"
    __snapshot_relations__ = ("kwh_cumac_values",)

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True)
    code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    params_schema: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    default_params: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    kwh_cumac_values: Mapped[list[ProductKwhCumac]] = relationship(back_populates="product")


class ProductKwhCumac(Base):
    """Energy-savings coefficient of a catalog product for one building type."""

    __tablename__ = "product_kwh_cumac"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("product_catalog.id"), index=True)
    building_type: Mapped[str] = mapped_column(String(60))
    kwh_cumac: Mapped[float | None] = mapped_column(Float, nullable=True)
    kwh_cumac_lt_400: Mapped[float | None] = mapped_column(Float, nullable=True)
    kwh_cumac_gte_400: Mapped[float | None] = mapped_column(Float, nullable=True)

    product: Mapped[ProductCatalog] = relationship(back_populates="kwh_cumac_values")


class ProjectProduct(Base):
    __tablename__ = "project_products"
    __snapshot_relations__ = ("product",)

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), index=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("product_catalog.id"), nullable=True)
    quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    dynamic_params: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    project: Mapped[Project] = relationship(back_populates="project_products")
    product: Mapped[ProductCatalog | None] = relationship()


class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True)
    quote_ref: Mapped[str | None] = mapped_column(String(40), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    valid_until: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Site(Base):
    """A realized work order (chantier) attached to a project."""

    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True)
    project_id: Mapped[int | None] = mapped_column(ForeignKey("projects.id"), nullable=True)
    site_ref: Mapped[str | None] = mapped_column(String(40), nullable=True)
    project_ref: Mapped[str | None] = mapped_column(String(40), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    project_category: Mapped[str | None] = mapped_column(String(120), nullable=True)
    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    date_debut: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    date_fin_prevue: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    date_fin: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    # Persisted totals (may be stale or missing)
    ca_ttc: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    marge_totale_ttc: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    revenue: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    profit_margin: Mapped[float | None] = mapped_column(Float, nullable=True)
    surface_facturee_m2: Mapped[float | None] = mapped_column(Float, nullable=True)
    nb_luminaires: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Rentability inputs
    cout_main_oeuvre_m2_ht: Mapped[float | None] = mapped_column(Float, nullable=True)
    cout_isolation_m2: Mapped[float | None] = mapped_column(Float, nullable=True)
    isolation_utilisee_m2: Mapped[float | None] = mapped_column(Float, nullable=True)
    surface_facturee: Mapped[float | None] = mapped_column(Float, nullable=True)
    montant_commission: Mapped[float | None] = mapped_column(Float, nullable=True)
    commission_eur_per_m2_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    commission_eur_per_m2: Mapped[float | None] = mapped_column(Float, nullable=True)
    travaux_non_subventionnes: Mapped[str | None] = mapped_column(String(20), nullable=True)
    travaux_non_subventionnes_montant: Mapped[float | None] = mapped_column(Float, nullable=True)
    valorisation_cee: Mapped[float | None] = mapped_column(Float, nullable=True)
    additional_costs: Mapped[list | None] = mapped_column(JSON, nullable=True)
    frais_tva_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    subcontractor_pricing_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    subcontractor_base_units: Mapped[float | None] = mapped_column(Float, nullable=True)
    subcontractor_payment_units: Mapped[float | None] = mapped_column(Float, nullable=True)
    subcontractor_payment_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    subcontractor_payment_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    subcontractor_payment_confirmed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True)
    invoice_ref: Mapped[str | None] = mapped_column(String(40), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    # When the payment was confirmed; the row's updated_at stands in when missing
    paid_date: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class OrganizationSettings(Base):
    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    # Serialized list of {id, value, label, color, isActive}
    statuts_projets: Mapped[list | None] = mapped_column(JSON, nullable=True)


TABLES: dict[str, type[Base]] = {
    "leads": Lead,
    "projects": Project,
    "project_products": ProjectProduct,
    "product_catalog": ProductCatalog,
    "product_kwh_cumac": ProductKwhCumac,
    "quotes": Quote,
    "sites": Site,
    "invoices": Invoice,
    "settings": OrganizationSettings,
}
