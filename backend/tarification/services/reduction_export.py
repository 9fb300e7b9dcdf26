"""
Export Excel des réductions par opération comptable.
"""
from datetime import date
from io import BytesIO
from typing import Dict, List

import openpyxl
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side


def generer_export_excel(lignes: List[Dict], date_debut: date, date_fin: date) -> bytes:
    """Construit le classeur .xlsx à partir de `export_reductions_par_operation`."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Reductions"

    # Styles
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    total_fill = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")
    money_fmt = '#,##0.00 "EUR"'
    thin_border = Border(
        left=Side(style='thin'), right=Side(style='thin'),
        top=Side(style='thin'), bottom=Side(style='thin')
    )

    # Titre
    ws.merge_cells('A1:F1')
    ws['A1'] = "EXPORT DES REDUCTIONS DE COTISATIONS"
    ws['A1'].font = Font(bold=True, size=14, color="1F4E79")
    ws['A2'] = f"Periode du {date_debut.isoformat()} au {date_fin.isoformat()}"
    ws['A2'].font = Font(italic=True, color="808080")

    row = 4
    headers = ["Source", "Code operation", "Libelle operation", "Compte", "Nb reductions", "Total"]
    for col, h in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=h)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")
        cell.border = thin_border

    total_general = 0.0
    nb_general = 0
    for ligne in lignes:
        row += 1
        operation = ligne.get("operation") or {}
        valeurs = [
            ligne.get("type_source"),
            operation.get("code", ""),
            operation.get("libelle", "Sans operation"),
            operation.get("compte_comptable", ""),
            ligne.get("count", 0),
            ligne.get("total", 0.0),
        ]
        for col, v in enumerate(valeurs, 1):
            cell = ws.cell(row=row, column=col, value=v)
            cell.border = thin_border
        ws.cell(row=row, column=6).number_format = money_fmt
        total_general += ligne.get("total", 0.0)
        nb_general += ligne.get("count", 0)

    # Total
    row += 1
    ws.cell(row=row, column=1, value="TOTAL").font = Font(bold=True)
    ws.cell(row=row, column=5, value=nb_general).font = Font(bold=True)
    ws.cell(row=row, column=6, value=round(total_general, 2)).number_format = money_fmt
    ws.cell(row=row, column=6).font = Font(bold=True)
    for c in range(1, 7):
        ws.cell(row=row, column=c).fill = total_fill
        ws.cell(row=row, column=c).border = thin_border

    # Ajuster largeurs
    for col_letter, width in [('A', 22), ('B', 18), ('C', 34), ('D', 12), ('E', 14), ('F', 16)]:
        ws.column_dimensions[col_letter].width = width

    output = BytesIO()
    wb.save(output)
    return output.getvalue()
