"""
Downloadable import templates.
"""
import io
from typing import Tuple

import pandas as pd

TEMPLATE_COLUMNS = ["Name", "Email", "Phone", "Work Phone", "Status", "Client ID", "Tags"]
TEMPLATE_ROWS = [
    ["John Doe", "john@example.com", "(555) 123-4567", "(555) 987-6543", "Lead", "", "prospect"],
    ["Jane Smith", "jane@example.com", "(555) 111-2222", "", "Active", "CL-0001", "retiree;seminar"],
]

TEMPLATE_MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def build_import_template(template_format: str) -> Tuple[bytes, str, str]:
    """
    Build the import template in the requested format.

    Returns:
        (content, media_type, filename)

    Raises:
        ValueError: for formats other than 'csv' and 'xlsx'
    """
    template_format = (template_format or "").lower()
    if template_format not in TEMPLATE_MEDIA_TYPES:
        raise ValueError(f"Unsupported template format '{template_format}'. Use 'csv' or 'xlsx'.")

    df = pd.DataFrame(TEMPLATE_ROWS, columns=TEMPLATE_COLUMNS)
    filename = f"import_template.{template_format}"

    if template_format == "csv":
        content = df.to_csv(index=False).encode("utf-8")
    else:
        buffer = io.BytesIO()
        df.to_excel(buffer, index=False, sheet_name="Clients", engine="openpyxl")
        content = buffer.getvalue()

    return content, TEMPLATE_MEDIA_TYPES[template_format], filename
