"""
Demo permit dataset returned when a page yields nothing usable
"""

from typing import Optional

from permit_agent.models.permit import (
    ContactInfo,
    DataSource,
    ExtractedPermitData,
    FeeUnit,
    PermitCategory,
    PermitFee,
    PermitForm,
    PermitType,
    ProcessingInfo,
    TimeRange,
)

WEEKDAY_HOURS = TimeRange(open="08:00", close="17:00")
FRIDAY_HOURS = TimeRange(open="08:00", close="16:00")

DEMO_WARNING = "No permit data could be extracted; showing representative demo data"


def build_demo_permit_data(source_url: Optional[str] = None) -> ExtractedPermitData:
    """Canned, clearly marked permit data for a typical municipality"""
    permits = [
        PermitType(
            id="demo-residential-building",
            name="Residential Building Permit",
            category=PermitCategory.BUILDING,
            description="Required for new construction, additions, and major renovations to residential structures",
            requirements=[
                "Completed application form",
                "Site plan showing property boundaries",
                "Construction plans and specifications",
                "Structural engineer certification (if required)",
                "Proof of property ownership",
            ],
            processing_time="2-4 weeks",
            fees=[
                PermitFee(type="Base permit fee", amount=125.0, description="Initial application processing fee"),
                PermitFee(
                    type="Square footage fee",
                    amount=0.15,
                    unit=FeeUnit.PER_SQFT,
                    description="Additional fee based on construction area",
                    conditions="Applies to areas over 1,000 sq ft",
                ),
            ],
        ),
        PermitType(
            id="demo-electrical",
            name="Electrical Permit",
            category=PermitCategory.ELECTRICAL,
            description="Required for electrical work including new installations, upgrades, and repairs",
            requirements=[
                "Licensed electrician application",
                "Electrical plans and load calculations",
                "Equipment specifications",
            ],
            processing_time="1-2 weeks",
            fees=[PermitFee(type="Electrical permit fee", amount=75.0, description="Standard electrical work permit")],
        ),
        PermitType(
            id="demo-plumbing",
            name="Plumbing Permit",
            category=PermitCategory.PLUMBING,
            description="Required for plumbing installations, modifications, and major repairs",
            requirements=[
                "Licensed plumber application",
                "Plumbing plans and specifications",
                "Fixture schedule",
            ],
            processing_time="1-2 weeks",
            fees=[PermitFee(type="Plumbing permit fee", amount=65.0, description="Standard plumbing work permit")],
        ),
    ]

    fees = [
        PermitFee(
            type="Plan review fee",
            amount=50.0,
            description="Required for all permit applications requiring plan review",
            conditions="Refundable if permit is denied",
        ),
        PermitFee(
            type="Re-inspection fee",
            amount=35.0,
            unit=FeeUnit.PER_INSPECTION,
            description="Additional fee for failed inspections requiring re-inspection",
            conditions="Applies after first failed inspection",
        ),
    ]

    contact = ContactInfo(
        phone="(555) 123-4567",
        email="permits@cityname.gov",
        hours={
            "monday": WEEKDAY_HOURS,
            "tuesday": WEEKDAY_HOURS,
            "wednesday": WEEKDAY_HOURS,
            "thursday": WEEKDAY_HOURS,
            "friday": FRIDAY_HOURS,
            "saturday": None,
            "sunday": None,
        },
    )

    processing = ProcessingInfo(
        average_time="2-3 weeks for standard permits",
        rush_options="Expedited review available for additional 50% fee",
        inspection_schedule="Inspections scheduled 24-48 hours in advance",
        appeal_process="Appeals must be filed within 30 days of permit decision",
    )

    permit_forms = [
        PermitForm(
            id="demo-building-app",
            name="Building Permit Application",
            url="#demo-building-application.pdf",
            is_required=True,
            description="Standard building permit application form",
        ),
        PermitForm(
            id="demo-electrical-app",
            name="Electrical Permit Application",
            url="#demo-electrical-application.pdf",
            description="Application form for electrical work permits",
        ),
    ]

    return ExtractedPermitData(
        permits=permits,
        fees=fees,
        contact=contact,
        processing=processing,
        permit_forms=permit_forms,
        source=DataSource.DEMO_FALLBACK,
        source_url=source_url,
        warnings=[DEMO_WARNING],
    )
