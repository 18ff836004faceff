import pytest
from pydantic import ValidationError

from docsql.models.enums import DataType
from docsql.models.identifiers import hash_field
from docsql.models.index import FieldHashMapping, IndexDescriptor, is_valid_data_type, varchar


def test_varchar() -> None:
    assert varchar() == "VARCHAR(50)"
    assert varchar(255) == "VARCHAR(255)"


@pytest.mark.parametrize(
    "data_type",
    [*list(DataType), "VARCHAR(50)", "varchar(50)", "DECIMAL(10,2)", "DECIMAL(10, 2)", "INT UNSIGNED"],
)
def test_accepts_column_types(data_type: str) -> None:
    assert is_valid_data_type(data_type)


@pytest.mark.parametrize(
    "data_type",
    ["", "INT; DROP TABLE users", "VARCHAR(50) DEFAULT 'x'", "VARCHAR()", None, 5],
)
def test_rejects_unsafe_column_types(data_type: object) -> None:
    assert not is_valid_data_type(data_type)


def test_index_descriptor_defaults() -> None:
    descriptor = IndexDescriptor(index_name="PRIMARY", column_name="id", is_unique=True, is_primary=True)

    assert descriptor.json_field is None


def test_field_hash_mapping_validates_field_name() -> None:
    mapping = FieldHashMapping(
        field_hash=hash_field("address.city"),
        table_name="shop.customers",
        field_name="address.city",
    )
    assert mapping.field_name == "address.city"

    with pytest.raises(ValidationError):
        FieldHashMapping(field_hash=hash_field("x"), table_name="shop.customers", field_name="not a path")
