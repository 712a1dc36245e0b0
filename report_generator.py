from io import BytesIO
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment

from models import valued_debts

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _money(value):
    return float(value or 0)


def _day(value):
    return value.strftime('%Y-%m-%d') if value else 'N/A'


class ReportGenerator:
    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF")

    def _write_table(self, ws, headers, rows, start_row=1):
        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=start_row, column=col, value=header)
            cell.fill = self.header_fill
            cell.font = self.header_font
            cell.alignment = Alignment(horizontal='center')

        for row, values in enumerate(rows, start_row + 1):
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=value)

        # Auto-adjust column widths
        for column in ws.columns:
            max_length = 0
            column_letter = column[0].column_letter
            for cell in column:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))
            ws.column_dimensions[column_letter].width = min(max_length + 2, 50)

    def _summary_rows(self, debts, now):
        total_principal = Decimal('0')
        total_owed = Decimal('0')
        total_paid = Decimal('0')
        total_remaining = Decimal('0')
        count = 0
        for debt, valuation in valued_debts(debts, now):
            count += 1
            total_principal += Decimal(debt.principal)
            total_owed += valuation.owed_amount
            total_paid += debt.total_paid
            total_remaining += valuation.remaining_amount
        return [
            ('Total debts', count),
            ('Total principal', _money(total_principal)),
            ('Total with interest', _money(total_owed)),
            ('Total paid', _money(total_paid)),
            ('Total remaining', _money(total_remaining)),
        ]

    def add_debts_sheet(self, wb, debts, now, title="Debts"):
        ws = wb.create_sheet(title)
        rows = []
        for debt, valuation in valued_debts(debts, now):
            rows.append((
                debt.debtor.name if debt.debtor else 'N/A',
                debt.debtor.phone if debt.debtor else 'N/A',
                _money(debt.principal),
                float(debt.interest_rate),
                _money(valuation.owed_amount),
                _money(debt.total_paid),
                _money(valuation.remaining_amount),
                valuation.status,
                _day(debt.due_date),
                _day(debt.created_at),
            ))
        self._write_table(ws, ['Debtor', 'Phone', 'Principal', 'Interest Rate (%)', 'Amount With Interest',
                               'Total Paid', 'Remaining', 'Status', 'Due Date', 'Created'], rows)
        return ws

    def add_payments_sheet(self, wb, payments, title="Payments"):
        ws = wb.create_sheet(title)
        rows = [(
            p.debt.debtor.name if p.debt and p.debt.debtor else 'N/A',
            p.debt.debtor.phone if p.debt and p.debt.debtor else 'N/A',
            _money(p.amount),
            _day(p.payment_date),
            p.description or 'N/A',
        ) for p in payments]
        self._write_table(ws, ['Debtor', 'Phone', 'Amount', 'Payment Date', 'Description'], rows)
        return ws

    def add_debtors_sheet(self, wb, debtors, now, title="Debtors"):
        ws = wb.create_sheet(title)
        rows = []
        for debtor in debtors:
            valuations = [v for _, v in valued_debts([d for d in debtor.debts if d.active], now)]
            remaining = sum((v.remaining_amount for v in valuations), Decimal('0'))
            rows.append((
                debtor.name,
                debtor.phone,
                debtor.other_phones or '',
                debtor.location or '',
                len(valuations),
                _money(remaining),
            ))
        self._write_table(ws, ['Name', 'Phone', 'Other Phones', 'Location', 'Active Debts', 'Total Remaining'], rows)
        return ws

    def add_summary_sheet(self, wb, debts, now, title="Summary"):
        ws = wb.create_sheet(title, 0)
        self._write_table(ws, ['Metric', 'Value'], self._summary_rows(debts, now))
        return ws

    def _new_workbook(self):
        wb = Workbook()
        wb.remove(wb.active)
        return wb

    def debts_report(self, debts, now):
        wb = self._new_workbook()
        self.add_summary_sheet(wb, debts, now)
        self.add_debts_sheet(wb, debts, now)
        return wb

    def payments_report(self, payments):
        wb = self._new_workbook()
        ws = self.add_payments_sheet(wb, payments)
        total = sum((Decimal(p.amount) for p in payments), Decimal('0'))
        ws.append([])
        ws.append(['Total payments', len(payments)])
        ws.append(['Total received', _money(total)])
        return wb

    def debtors_report(self, debtors, now):
        wb = self._new_workbook()
        self.add_debtors_sheet(wb, debtors, now)
        return wb

    def complete_report(self, debtors, debts, payments, now):
        wb = self._new_workbook()
        self.add_summary_sheet(wb, debts, now)
        self.add_debtors_sheet(wb, debtors, now)
        self.add_debts_sheet(wb, debts, now)
        self.add_payments_sheet(wb, payments)
        return wb

    @staticmethod
    def to_stream(wb):
        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output


report_generator = ReportGenerator()
