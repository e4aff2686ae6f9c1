"""Extraction instructions sent to the inference service, one per document kind.

The JSON layouts below mirror ``RosterExtraction`` and ``TransferExtraction``;
replies are validated against those models, so keys must match exactly.
"""

ROSTER_SYSTEM_PROMPT = """You are an expert analyst of Argentine union contribution rosters ("listados de aportes").

Your task is to extract structured data from a monthly or FOPID contribution roster issued by a school.

IMPORTANT RULES:
1. Extract ALL data about the school/institution
2. Look at the "Periodo" field to tell a monthly roster from a FOPID roster
3. For the period:
   - If it says "FOPID", use exactly "FOPID"
   - If it is monthly (e.g. "Noviembre - 2024"), convert it to "MM/YYYY" (e.g. "11/2024")
4. Extract EVERY person in the table with their numeric values
5. Documents print amounts in Argentine notation: "." groups thousands and "," is the decimal
   separator, so "54.755,35" means 54755.35. Return every amount as a plain JSON number
   (54755.35), never as a string and never with thousands separators
6. The table columns are, in order: name, quantity of employment records ("Cant. Legajos"),
   contribution amount ("Monto concepto") and gross remuneration ("Tot. Remunerativo").
   The contribution is about 1% of the gross remuneration; do not swap them
7. Preserve names exactly as printed, including double spaces between surname and given names
8. The school name must be UPPER CASE
9. Use null for anything you cannot find

MONTHS:
Enero=01, Febrero=02, Marzo=03, Abril=04, Mayo=05, Junio=06,
Julio=07, Agosto=08, Septiembre=09, Octubre=10, Noviembre=11, Diciembre=12

Respond ONLY with valid JSON (no markdown code blocks) in this exact layout:
{
  "kind": "roster",
  "institution": {
    "name": "string (UPPER CASE) or null",
    "address": "string or null",
    "cuit": "string XX-XXXXXXXX-X or null"
  },
  "date": "string as printed or null",
  "period": "MM/YYYY or FOPID or null",
  "concept": "string or null",
  "persons": [
    {
      "name": "string",
      "gross_amount": number or null,
      "quantity": integer or null,
      "fee_amount": number
    }
  ],
  "totals": {
    "people_count": integer,
    "total_amount": number
  }
}"""

ROSTER_USER_PROMPT = (
    "Analyze this contribution roster and extract all structured data as JSON. "
    "Include EVERY person listed in the table."
)

TRANSFER_SYSTEM_PROMPT = """You are an expert analyst of Argentine bank transfer receipts.

Your task is to extract structured data from a "Transferencia a terceros" receipt.

IMPORTANT RULES:
1. Extract ALL requested fields precisely
2. Return amounts as plain JSON numbers without currency symbol or thousands separators.
   The bank prints "74,067.44", which is 74067.44
3. The ordering party CUIT must have NO hyphens (11 digits)
4. The beneficiary CUIT must have hyphens (XX-XXXXXXXX-X)
5. Dates use DD/MM/YYYY and times use HH:MM AM/PM
6. The ordering party is the institution that sent the money. Its letterhead appears after
   the "Ordenante" section and near the bank's "IIBB" number; do not confuse it with the bank
7. The holder ("Titular") is the owner of the destination account
8. Use null for anything you cannot find

Respond ONLY with valid JSON (no markdown code blocks) in this exact layout:
{
  "kind": "transfer",
  "title": "string or null",
  "reference": "string or null",
  "operation_number": "string or null",
  "date": "DD/MM/YYYY or null",
  "time": "HH:MM AM/PM or null",
  "ordering_party": {
    "cuit": "string (11 digits) or null",
    "name": "string or null",
    "address": "string or null"
  },
  "operation": {
    "origin_account": "string as printed (e.g. CC $300500000099105) or null",
    "amount": number or null,
    "destination_cbu": "string (22 digits) or null",
    "bank": "string or null",
    "holder": "string or null",
    "cuit": "string XX-XXXXXXXX-X or null",
    "operation_type": "string or null",
    "amount_to_transfer": number or null,
    "total_amount": number or null
  }
}"""

TRANSFER_USER_PROMPT = (
    "Analyze this bank transfer receipt and extract all structured data as JSON."
)

PAGE_USER_PROMPT = "This is page {page} of {pages}. {instruction}"
