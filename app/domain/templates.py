from __future__ import annotations

from dataclasses import dataclass, field

from app.domain.models import CategoryDomain

DEFAULT_MAX_PHOTOS = 2


@dataclass(frozen=True)
class StepTemplateSeed:
    step_number: int
    step_name: str
    checklist_items: tuple[str, ...] = field(default_factory=tuple)
    instructions: str = ""
    photo_required: bool = False
    max_photos: int = 0


def _photo_step(step_number: int, step_name: str, items: tuple[str, ...], instructions: str) -> StepTemplateSeed:
    return StepTemplateSeed(
        step_number=step_number,
        step_name=step_name,
        checklist_items=items,
        instructions=instructions,
        photo_required=True,
        max_photos=DEFAULT_MAX_PHOTOS,
    )


AUTO_STEPS: tuple[StepTemplateSeed, ...] = (
    StepTemplateSeed(
        step_number=1,
        step_name="Vehicle Info",
        instructions="Enter year, make, model, trim, mileage, VIN and color.",
    ),
    _photo_step(
        2,
        "Exterior",
        (
            "Paint condition and color match",
            "Panel gaps even",
            "Dents or scratches",
            "Rust on body panels",
            "Glass and windshield chips",
            "Headlights and taillights intact",
            "Tire tread depth",
            "Wheel and rim damage",
        ),
        "Walk around the vehicle in daylight and look down each side.",
    ),
    _photo_step(
        3,
        "Interior",
        (
            "Seat wear and tears",
            "Dashboard warning lights",
            "Headliner condition",
            "Odors (smoke, mildew)",
            "Carpet and floor mats",
            "Seat belts function",
            "Odometer matches listing",
        ),
        "Sit in every seat and check the cabin with the engine off, then on.",
    ),
    _photo_step(
        4,
        "Engine",
        (
            "Oil level and color",
            "Coolant level",
            "Belts and hoses",
            "Visible leaks",
            "Battery terminals",
            "Cold start noise",
            "Exhaust smoke color",
        ),
        "Inspect the engine bay cold if possible.",
    ),
    _photo_step(
        5,
        "Undercarriage",
        (
            "Frame rust or damage",
            "Exhaust system",
            "Suspension components",
            "Fluid drips",
            "CV boots",
            "Brake lines",
        ),
        "Use a flashlight and look under the front, middle and rear.",
    ),
    _photo_step(
        6,
        "Electronics",
        (
            "Infotainment and radio",
            "Air conditioning and heat",
            "Power windows and locks",
            "Mirrors adjust",
            "Wipers and washers",
            "Horn",
            "Backup camera and sensors",
        ),
        "Operate every switch and control at least once.",
    ),
    StepTemplateSeed(
        step_number=7,
        step_name="Test Drive",
        checklist_items=(
            "Smooth acceleration",
            "Transmission shifts",
            "Braking straight and firm",
            "Steering alignment",
            "Unusual noises",
            "Cruise control",
        ),
        instructions="Note engine performance, braking, steering feel, and any unusual noises.",
    ),
)

GARAGE_STEPS: tuple[StepTemplateSeed, ...] = (
    StepTemplateSeed(step_number=1, step_name="Property Info", instructions="Enter address and garage details."),
    _photo_step(
        2,
        "Door & Opener",
        ("Door panels", "Springs and cables", "Opener operation", "Safety sensors", "Weather seal"),
        "Run the door through a full open and close cycle.",
    ),
    _photo_step(
        3,
        "Structure",
        ("Foundation cracks", "Wall damage", "Roof leaks", "Ceiling joists", "Slab settling"),
        "Check corners and the ceiling line for movement.",
    ),
    _photo_step(
        4,
        "Electrical",
        ("Outlets grounded", "GFCI protection", "Lighting", "Panel labeling", "Exposed wiring"),
        "Test outlets with a plug-in tester.",
    ),
    _photo_step(
        5,
        "Drainage",
        ("Floor drain", "Gutters and downspouts", "Grading away from slab", "Water staining"),
        "Look for staining along the base of the walls.",
    ),
    _photo_step(
        6,
        "Storage & Access",
        ("Attic access", "Shelving anchored", "Side door condition", "Windows"),
        "Open every access point.",
    ),
    StepTemplateSeed(
        step_number=7,
        step_name="Final Walkthrough",
        checklist_items=("Overall cleanliness", "Pest evidence", "Fire separation to house"),
        instructions="Summarize anything that needs a specialist.",
    ),
)

HOUSE_STEPS: tuple[StepTemplateSeed, ...] = (
    StepTemplateSeed(step_number=1, step_name="Property Info", instructions="Enter address, year built and size."),
    _photo_step(
        2,
        "Exterior",
        ("Roof covering", "Siding", "Gutters", "Windows and doors", "Grading and drainage", "Driveway"),
        "Walk the perimeter of the house.",
    ),
    _photo_step(
        3,
        "Interior",
        ("Walls and ceilings", "Floors", "Stairs and railings", "Doors close and latch", "Signs of moisture"),
        "Visit every room.",
    ),
    _photo_step(
        4,
        "Systems",
        ("Furnace age", "Water heater", "Electrical panel", "Plumbing leaks", "Air conditioning"),
        "Record model plates where visible.",
    ),
    _photo_step(
        5,
        "Basement & Foundation",
        ("Foundation cracks", "Efflorescence", "Sump pump", "Support posts"),
        "Use a flashlight along every wall.",
    ),
    _photo_step(
        6,
        "Kitchen & Baths",
        ("Appliances work", "Cabinet condition", "Fixture leaks", "Ventilation fans", "Caulking"),
        "Run water at every fixture.",
    ),
    StepTemplateSeed(
        step_number=7,
        step_name="Final Walkthrough",
        checklist_items=("Neighborhood noise", "Smoke and CO detectors", "Overall impression"),
        instructions="Capture anything you want to ask the seller about.",
    ),
)

BUILTIN_STEP_TEMPLATES: dict[CategoryDomain, tuple[StepTemplateSeed, ...]] = {
    CategoryDomain.AUTO: AUTO_STEPS,
    CategoryDomain.GARAGE: GARAGE_STEPS,
    CategoryDomain.HOUSE: HOUSE_STEPS,
}
