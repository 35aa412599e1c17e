"""Example usage of the structured_tables library."""

from dataclasses import dataclass, field
from typing import Annotated, Optional

from structured_tables import DecodePolicy, MissingRequiredColumnError, Schema, column, table

# Declare records using the DSL
declarations = """
@Table
struct RemindersList {
    let id: Int
    var title = ""
    var color: Int = 4889071
}

@Table("reminders")
struct Reminder {
    let id: Int
    var title: String
    var notes: String?
    @Column("list_id") var remindersListID: Int
    @Column(as: ISO8601.self) var dueDate: Date?
    @Ephemeral var isSelected = false
}

@Selection
struct Coordinates {
    var latitude: Double
    var longitude: Double
}

@Table
struct Place {
    let id: Int
    var name: String
    @Columns var location: Coordinates?
}

@Table
enum Attachment {
    case photo(url: String)
    case note(text: String)
}
"""

schema = Schema()
schema.parse(declarations)

for name, derivation in schema.derive_all().items():
    for diagnostic in derivation.diagnostics:
        print(f"  {diagnostic}")
    result = derivation.unwrap()
    print(f"{name} -> table {result.table_name!r}, {result.width} columns")
    print(f"  SELECT {result.columns().sql}")

# Decode rows
reminder = schema.derive("Reminder").unwrap()
print(reminder.decode([1, "Buy milk", None, 7, "2024-01-01T00:00:00Z"]))

place = schema.derive("Place").unwrap()
print(place.decode([1, "Home", None, None]))  # location decodes to None
print(place.decode([2, "Park", 51.5, -0.12]))

try:
    reminder.decode([1, None, None, None, None], policy=DecodePolicy.COLLECT_ALL)
except MissingRequiredColumnError as e:
    print(f"Decode failed: {e}")

# Drafts leave the primary key to the database
draft = reminder.draft
print(f"{draft.type_name}{draft.signature}")
print(draft.make(title="Call mom", remindersListID=7))

# Sum types: the first present case wins
attachment = schema.derive("Attachment").unwrap()
print(attachment.decode(["https://example.com/a.png", None]))
print(attachment.selection.case("note", text="Remember the milk").sql)

# Partial selections
coordinates = schema.derive("Coordinates").unwrap()
print(coordinates.selection(latitude=0.0, longitude=0.0).sql)


# Dataclasses can be declared directly
@table("users")
@dataclass(frozen=True)
class User:
    id: int
    email: Annotated[str, column("email_address")]
    nickname: Optional[str] = None
    tags: list[str] = field(default_factory=list)


print(User.__table__.columns().sql)
print(User.decode([1, "ada@example.com", None, None]))
