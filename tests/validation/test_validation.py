import pytest

from blazedocs.core import (
    Document,
    EmbeddedDocument,
    EmbeddedField,
    FloatField,
    ListField,
    ReferenceField,
    StringField,
)
from blazedocs.validation import (
    DocumentKeyValidator,
    MaxValueValidator,
    MinValueValidator,
    RegexValidator,
    ValidationError,
    validate_instance,
)


class Dimensions(EmbeddedDocument):
    width = FloatField(nullable=False, validators=[MinValueValidator(0)])


class Shipment(EmbeddedDocument):
    carrier = StringField(nullable=False)
    weight = FloatField(validators=[MaxValueValidator(1000)])


class Parcel(Document):
    code = StringField(nullable=False, validators=[RegexValidator(r"^P-\d+$")])
    size = EmbeddedField(Dimensions, nullable=True)
    shipments = ListField(Shipment)

    def clean(self):
        if self.shipments and self.size is None:
            raise ValueError("Shipped parcels need dimensions.")


class Depot(Document):
    city = StringField(nullable=True)


class Pallet(Document):
    depot = ReferenceField("Depot", nullable=True, validators=[DocumentKeyValidator("Depot")])


def test_valid_document_passes():
    parcel = Parcel(id="parcels/1", code="P-1", size=Dimensions(width=2.0))
    validate_instance(parcel)
    parcel.full_clean()


def test_errors_are_aggregated_per_field():
    parcel = Parcel(id="parcels/1", code="X-1")

    with pytest.raises(ValidationError) as excinfo:
        validate_instance(parcel)

    assert excinfo.value.errors == {"code": ["Value does not match pattern '^P-\\d+$'."]}
    assert excinfo.value.key == "parcels/1"
    assert str(excinfo.value).startswith("parcels/1: code:")


def test_nested_documents_are_validated_with_paths():
    parcel = Parcel(
        code="P-2",
        size=Dimensions(width=-1.0),
        shipments=[Shipment(carrier="DHL", weight=5), Shipment(weight=5000)],
    )

    with pytest.raises(ValidationError) as excinfo:
        parcel.full_clean()

    assert set(excinfo.value.errors) == {"size.width", "shipments[1].carrier", "shipments[1].weight"}
    assert excinfo.value.key is None


def test_clean_hook_reports_document_level_errors():
    parcel = Parcel(code="P-3", shipments=[Shipment(carrier="UPS")])

    with pytest.raises(ValidationError) as excinfo:
        parcel.full_clean()

    assert excinfo.value.errors == {"__all__": ["Shipped parcels need dimensions."]}
    assert "non-field" in str(excinfo.value)


def test_regex_validator_rejects_non_strings():
    with pytest.raises(ValueError):
        RegexValidator(r"^companies/\d+")(42)
    RegexValidator(r"^companies/\d+")(None)


def test_reference_keys_must_belong_to_the_target_collection():
    Pallet(depot="depots/4").full_clean()
    Pallet(depot="Depots/4").full_clean()

    with pytest.raises(ValidationError) as excinfo:
        Pallet(depot="pallets/4").full_clean()
    assert excinfo.value.errors == {"depot": ["Key 'pallets/4' is not a 'depots/<id>' key."]}

    with pytest.raises(ValidationError):
        Pallet(depot="depots/").full_clean()


def test_document_key_validator_honours_separator_and_unknown_targets():
    DocumentKeyValidator(Depot, separator="-")("depots-1")
    with pytest.raises(ValueError):
        DocumentKeyValidator(Depot, separator="-")("depots/1")
    with pytest.raises(ValueError):
        DocumentKeyValidator("Warehouse")("warehouses/1")
