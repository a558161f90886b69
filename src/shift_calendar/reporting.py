"""
Reporting and Export Module for the Shift Calendar

Handles PDF, Excel, and CSV export of a month view together with its
earnings estimate.
"""

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, PageBreak
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from xml.sax.saxutils import escape
from datetime import datetime, date
import calendar
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from .calendar_logic import ShiftCalendar, MonthSchedule
from .date_utils import WEEKDAY_NAMES, to_iso
from .earnings import EarningsSummary


logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}([0-9A-Fa-f]{2})?$")


def _pdf_color(color_key: str) -> str:
    """reportlab font color for a stored color key; alpha suffixes are dropped"""
    if color_key and _HEX_COLOR.match(color_key):
        return color_key[:7]
    return "#000000"


class ReportGenerator:
    """Main class for generating reports and exports"""

    def __init__(self, shift_calendar: ShiftCalendar):
        self.shift_calendar = shift_calendar
        self.data_manager = shift_calendar.data_manager
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom report styles"""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            spaceAfter=30,
            alignment=1  # Center alignment
        ))

        self.styles.add(ParagraphStyle(
            name='CustomHeading',
            parent=self.styles['Heading2'],
            fontSize=14,
            spaceAfter=12
        ))

    def _load_month(self, year: int, month: int,
                    month_schedule: Optional[MonthSchedule]) -> MonthSchedule:
        return month_schedule or self.shift_calendar.build_month(year, month)

    def export_calendar_pdf(self, year: int, month: int, output_path: str,
                            month_schedule: Optional[MonthSchedule] = None) -> bool:
        """Export monthly calendar to PDF with an earnings page"""
        try:
            schedule = self._load_month(year, month, month_schedule)
            earnings = self.shift_calendar.calculate_monthly_earnings(year, month, schedule)

            doc = SimpleDocTemplate(
                output_path,
                pagesize=landscape(A4),
                rightMargin=0.5*inch,
                leftMargin=0.5*inch,
                topMargin=0.5*inch,
                bottomMargin=0.5*inch
            )

            story = []
            title = Paragraph(f"Work Shifts - {calendar.month_name[month]} {year}", self.styles['CustomTitle'])
            story.append(title)
            story.append(Spacer(1, 20))
            story.append(self._create_calendar_table(year, month, schedule))

            if schedule.errors:
                story.append(Spacer(1, 20))
                story.append(self._create_error_table(schedule))

            story.append(PageBreak())
            story.extend(self._create_earnings_content(earnings))

            doc.build(story)
            return True

        except Exception as e:
            logger.error(f"Error creating PDF: {e}", exc_info=True)
            return False

    def _create_calendar_table(self, year: int, month: int, schedule: MonthSchedule) -> Table:
        """Create calendar table for PDF, weeks starting on Sunday"""
        cal = calendar.Calendar(firstweekday=6).monthdayscalendar(year, month)

        data = [list(WEEKDAY_NAMES)]
        for week in cal:
            week_data = []
            for day in week:
                if day == 0:
                    week_data.append('')
                else:
                    week_data.append(self._format_calendar_cell(date(year, month, day), schedule))
            data.append(week_data)

        table = Table(data, colWidths=[1.45*inch]*7, rowHeights=[0.35*inch] + [1*inch]*(len(data) - 1))
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 10),
            ('BACKGROUND', (0, 1), (-1, -1), colors.beige),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('FONTSIZE', (0, 1), (-1, -1), 8),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        return table

    def _format_calendar_cell(self, day: date, schedule: MonthSchedule) -> Paragraph:
        """Format individual calendar cell content"""
        content = f"<b>{day.day}</b>"
        for item in schedule.display_items_on(day):
            content += f'<br/><font color="{_pdf_color(item.color_key)}">&#8226;</font> {escape(item.label)}'
        return Paragraph(content, self.styles['Normal'])

    def _create_error_table(self, schedule: MonthSchedule) -> Table:
        data = [['Shift', 'Problem']]
        for failure in schedule.errors:
            data.append([failure.shift_id, Paragraph(escape(failure.message), self.styles['Normal'])])
        table = Table(data, colWidths=[2.5*inch, 6*inch])
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.lightcoral),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
        ]))
        return table

    def _create_earnings_content(self, earnings: EarningsSummary) -> List:
        """Create earnings summary content for PDF"""
        content = [Paragraph("Earnings Estimate", self.styles['CustomTitle']), Spacer(1, 20)]

        shifts_by_id = self.data_manager.get_shifts_by_id()
        data = [['Job', 'Wage Type', 'Days Worked', 'Estimated Pay']]
        for shift_id, amount in earnings.per_shift.items():
            shift = shifts_by_id.get(shift_id)
            data.append([
                shift.label if shift else shift_id,
                shift.wage_type.value if shift else '',
                str(earnings.worked_days.get(shift_id, 0)),
                f"{amount:,.2f}"
            ])
        data.append(['Total', '', str(sum(earnings.worked_days.values())), f"{earnings.total:,.2f}"])

        table = Table(data, colWidths=[3*inch, 1.5*inch, 1.5*inch, 2*inch])
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
        ]))
        content.append(table)
        return content

    def export_schedule_excel(self, year: int, month: int, output_path: str,
                              month_schedule: Optional[MonthSchedule] = None) -> bool:
        """Export the month to an Excel workbook"""
        try:
            schedule = self._load_month(year, month, month_schedule)
            earnings = self.shift_calendar.calculate_monthly_earnings(year, month, schedule)

            with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
                self._create_schedule_dataframe(schedule).to_excel(writer, sheet_name='Schedule', index=False)
                self._create_shift_dataframe().to_excel(writer, sheet_name='Shifts', index=False)
                self._create_earnings_dataframe(earnings).to_excel(writer, sheet_name='Earnings', index=False)
                if schedule.errors:
                    self._create_error_dataframe(schedule).to_excel(writer, sheet_name='Errors', index=False)

                self._format_excel_worksheets(writer)

            return True

        except Exception as e:
            logger.error(f"Error exporting to Excel: {e}", exc_info=True)
            return False

    def _create_schedule_dataframe(self, schedule: MonthSchedule) -> pd.DataFrame:
        """One row per (date, shift), days without shifts get an empty row"""
        data = []
        year_month = schedule.year_month
        for day in range(1, year_month.days_in_month + 1):
            date_obj = date(year_month.year, year_month.month, day)
            date_str = to_iso(date_obj)
            items = schedule.display_items_on(date_str)
            if not items:
                data.append({'Date': date_str, 'Day': date_obj.strftime("%A"),
                             'Shift_ID': '', 'Job': '', 'Color': ''})
            for item in items:
                data.append({
                    'Date': date_str,
                    'Day': date_obj.strftime("%A"),
                    'Shift_ID': item.shift_id,
                    'Job': item.label,
                    'Color': item.color_key,
                })
        return pd.DataFrame(data, columns=['Date', 'Day', 'Shift_ID', 'Job', 'Color'])

    def _create_shift_dataframe(self) -> pd.DataFrame:
        data = []
        for shift in self.data_manager.get_shifts():
            data.append({
                'ID': shift.id,
                'Job': shift.label,
                'Repeat': shift.recurrence_rule.value,
                'Start_Date': to_iso(shift.start_date),
                'End_Date': to_iso(shift.end_date) if shift.end_date else '',
                'Weekdays': ", ".join(WEEKDAY_NAMES[d] for d in sorted(shift.selected_weekdays)),
                'Hours': f"{shift.start_time}-{shift.end_time}",
                'Wage': shift.wage,
                'Wage_Type': shift.wage_type.value,
            })
        return pd.DataFrame(data, columns=['ID', 'Job', 'Repeat', 'Start_Date', 'End_Date',
                                           'Weekdays', 'Hours', 'Wage', 'Wage_Type'])

    def _create_earnings_dataframe(self, earnings: EarningsSummary) -> pd.DataFrame:
        shifts_by_id = self.data_manager.get_shifts_by_id()
        data = []
        for shift_id, amount in earnings.per_shift.items():
            shift = shifts_by_id.get(shift_id)
            data.append({
                'Shift_ID': shift_id,
                'Job': shift.label if shift else '',
                'Days_Worked': earnings.worked_days.get(shift_id, 0),
                'Estimated_Pay': amount,
            })
        data.append({'Shift_ID': '', 'Job': 'Total',
                     'Days_Worked': sum(earnings.worked_days.values()),
                     'Estimated_Pay': earnings.total})
        return pd.DataFrame(data)

    def _create_error_dataframe(self, schedule: MonthSchedule) -> pd.DataFrame:
        return pd.DataFrame([
            {'Shift_ID': f.shift_id, 'Error': f.error_type, 'Message': f.message}
            for f in schedule.errors
        ])

    def _format_excel_worksheets(self, writer):
        """Format Excel worksheets"""
        from openpyxl.styles import PatternFill, Font

        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_font = Font(color="FFFFFF", bold=True)

        for worksheet in writer.sheets.values():
            for cell in worksheet[1]:
                cell.fill = header_fill
                cell.font = header_font

            # Auto-adjust column widths
            for column in worksheet.columns:
                max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
                worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

    def export_schedule_csv(self, year: int, month: int, output_path: str,
                            month_schedule: Optional[MonthSchedule] = None) -> bool:
        """Export schedule to CSV format"""
        try:
            schedule = self._load_month(year, month, month_schedule)
            self._create_schedule_dataframe(schedule).to_csv(output_path, index=False)
            return True

        except Exception as e:
            logger.error(f"Error exporting to CSV: {e}", exc_info=True)
            return False

    def create_month_summary(self, year: int, month: int,
                             month_schedule: Optional[MonthSchedule] = None) -> str:
        """Plain-text listing of the month for console display"""
        schedule = self._load_month(year, month, month_schedule)
        earnings = self.shift_calendar.calculate_monthly_earnings(year, month, schedule)

        lines = [f"WORK SHIFTS - {calendar.month_name[month]} {year}", ""]
        for date_str in sorted(schedule.display_index):
            labels = ", ".join(item.label for item in schedule.display_index[date_str])
            lines.append(f"{date_str}: {labels}")
        if not schedule.display_index:
            lines.append("No shifts scheduled")

        if schedule.errors:
            lines.append("")
            lines.append("Shifts that could not be shown:")
            for failure in schedule.errors:
                lines.append(f"• {failure.shift_id}: {failure.message}")

        lines.append("")
        lines.append(f"Estimated earnings: {earnings.total:,.2f}")
        return "\n".join(lines)


class ExportManager:
    """Manager class for handling all export operations"""

    def __init__(self, shift_calendar: ShiftCalendar):
        self.shift_calendar = shift_calendar
        self.report_generator = ReportGenerator(shift_calendar)

    def export_calendar(self, year: int, month: int, format_type: str, output_path: str,
                        month_schedule: Optional[MonthSchedule] = None) -> bool:
        """Export calendar in specified format"""
        if format_type.lower() == 'pdf':
            return self.report_generator.export_calendar_pdf(year, month, output_path, month_schedule)
        elif format_type.lower() == 'excel':
            return self.report_generator.export_schedule_excel(year, month, output_path, month_schedule)
        elif format_type.lower() == 'csv':
            return self.report_generator.export_schedule_csv(year, month, output_path, month_schedule)
        else:
            raise ValueError(f"Unsupported format: {format_type}")

    def get_default_filename(self, year: int, month: int, format_type: str) -> str:
        """Generate default filename for export"""
        month_name = calendar.month_name[month].lower()
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        extension = 'xlsx' if format_type.lower() == 'excel' else format_type.lower()

        return f"work_shifts_{month_name}_{year}_{timestamp}.{extension}"

    def batch_export(self, year: int, month: int, output_dir: str,
                     formats: List[str] = None) -> Dict[str, bool]:
        """Export the month in multiple formats"""
        if formats is None:
            formats = ['pdf', 'excel', 'csv']

        results = {}
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        schedule = self.shift_calendar.build_month(year, month)

        for format_type in formats:
            file_path = output_path / self.get_default_filename(year, month, format_type)
            try:
                results[format_type] = self.export_calendar(year, month, format_type, str(file_path), schedule)
            except ValueError as e:
                logger.error(f"Error exporting {format_type}: {e}", exc_info=True)
                results[format_type] = False

        return results
