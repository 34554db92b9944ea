import csv
import io

BOM = "\ufeff"

DIAGNOSIS_COLUMNS = (
    ("id", "ID"),
    ("type_code", "Type code"),
    ("type_name", "Type name"),
    ("scores", "Scores"),
    ("user_agent", "User agent"),
    ("created_at", "Created at"),
)

PAGEVIEW_COLUMNS = (
    ("id", "ID"),
    ("page", "Page"),
    ("user_agent", "User agent"),
    ("referrer", "Referrer"),
    ("ip", "IP"),
    ("utm_source", "UTM source"),
    ("utm_medium", "UTM medium"),
    ("utm_campaign", "UTM campaign"),
    ("created_at", "Created at"),
)


def to_csv(rows, columns) -> str:
    """
    Render rows as CSV for spreadsheet tools.

    columns: sequence of (field, header). Text fields are always quoted with
    embedded quotes doubled; numbers are left bare. A BOM is prepended so
    Excel picks up UTF-8.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow([header for _, header in columns])
    for row in rows:
        writer.writerow([_cell(row.get(field)) for field, _ in columns])
    return BOM + buf.getvalue()


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return str(value)
