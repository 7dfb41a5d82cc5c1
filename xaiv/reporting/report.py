"""
Report container and HTML rendering.

A report is an ordered list of sections, each holding narrative text,
tables and figures. Rendering writes one file per figure (plotly to
standalone HTML, matplotlib to PNG), one CSV per table and an
``index.html`` page tying them together, plus a ``README.md`` with the
same narrative and links.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import html
import re
import pandas as pd

from ..utils.logging import LoggingMixin

PAGE_STYLE = """
body { font-family: -apple-system, Helvetica, Arial, sans-serif; max-width: 1100px;
       margin: 2em auto; color: #222; line-height: 1.5; }
h1 { border-bottom: 2px solid #4378bf; padding-bottom: .3em; }
h2 { margin-top: 2em; color: #371ea3; }
table { border-collapse: collapse; margin: 1em 0; font-size: .9em; }
th, td { border: 1px solid #ddd; padding: 4px 8px; text-align: right; }
th { background: #f4f4f8; }
iframe { width: 100%; height: 520px; border: none; }
img { max-width: 100%; }
.meta { color: #888; font-size: .85em; }
"""


def slugify(text: str) -> str:
    slug = re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')
    return slug or 'item'


@dataclass
class Section:
    """One titled block of a report."""

    title: str
    text: str = ""
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    figures: Dict[str, Any] = field(default_factory=dict)
    downloads: Dict[str, pd.DataFrame] = field(default_factory=dict)


class VignetteReport(LoggingMixin):
    """Ordered narrative sections rendered to a static HTML page."""

    def __init__(self, title: str, intro: str = "") -> None:
        self.title = title
        self.intro = intro
        self.sections: List[Section] = []

    def add_section(
        self,
        title: str,
        text: str = "",
        tables: Optional[Dict[str, pd.DataFrame]] = None,
        figures: Optional[Dict[str, Any]] = None,
        downloads: Optional[Dict[str, pd.DataFrame]] = None
    ) -> Section:
        section = Section(
            title=title,
            text=text,
            tables=tables or {},
            figures=figures or {},
            downloads=downloads or {},
        )
        self.sections.append(section)
        return section

    def section(self, title: str) -> Section:
        for section in self.sections:
            if section.title == title:
                return section
        raise KeyError(f"No section titled '{title}'")

    def render(self, output_dir: Union[str, Path], max_table_rows: int = 25) -> Path:
        """
        Write the report to ``output_dir``.

        Args:
            output_dir: Target directory (created if missing)
            max_table_rows: Rows of each table embedded in the page

        Returns:
            Path to the written index.html
        """
        out = Path(output_dir)
        (out / 'figures').mkdir(parents=True, exist_ok=True)
        (out / 'tables').mkdir(parents=True, exist_ok=True)

        body = [f"<h1>{html.escape(self.title)}</h1>"]
        body.append(
            f"<p class='meta'>Generated {datetime.now().strftime('%Y-%m-%d %H:%M')}</p>"
        )
        body.extend(_paragraphs(self.intro))
        markdown = [f"# {self.title}", ""] + _markdown_paragraphs(self.intro)

        for idx, section in enumerate(self.sections, start=1):
            prefix = f"{idx:02d}_{slugify(section.title)}"
            body.append(f"<h2>{html.escape(section.title)}</h2>")
            body.extend(_paragraphs(section.text))
            markdown += [f"## {section.title}", ""] + _markdown_paragraphs(section.text)

            for name, table in section.tables.items():
                csv_path = out / 'tables' / f"{prefix}_{slugify(name)}.csv"
                table.to_csv(csv_path, index=False)
                markdown.append(f"- Table: [{name}](tables/{csv_path.name})")
                body.append(f"<h3>{html.escape(name)}</h3>")
                body.append(table.head(max_table_rows).to_html(
                    index=False, float_format=lambda v: f"{v:.4g}", border=0
                ))
                if len(table) > max_table_rows:
                    body.append(
                        f"<p class='meta'>First {max_table_rows} of {len(table)} rows, "
                        f"full table: <a href='tables/{csv_path.name}'>{csv_path.name}</a></p>"
                    )

            for name, table in section.downloads.items():
                csv_path = out / 'tables' / f"{prefix}_{slugify(name)}.csv"
                table.to_csv(csv_path, index=False)
                markdown.append(f"- Data: [{name}](tables/{csv_path.name})")
                body.append(
                    f"<p class='meta'>Data: <a href='tables/{csv_path.name}'>{csv_path.name}</a></p>"
                )

            for name, figure in section.figures.items():
                snippet, filename = self._write_figure(
                    figure, out / 'figures', f"{prefix}_{slugify(name)}"
                )
                body.append(snippet)
                markdown.append(f"- Figure: [{name}](figures/{filename})")
            markdown.append("")

        page = (
            "<!DOCTYPE html>\n<html><head><meta charset='utf-8'>"
            f"<title>{html.escape(self.title)}</title><style>{PAGE_STYLE}</style></head>\n"
            "<body>\n" + "\n".join(body) + "\n</body></html>\n"
        )
        index_path = out / 'index.html'
        index_path.write_text(page, encoding='utf-8')
        (out / 'README.md').write_text("\n".join(markdown) + "\n", encoding='utf-8')

        self.log_info(f"Rendered '{self.title}' to {index_path}")
        return index_path

    def _write_figure(self, figure: Any, directory: Path, stem: str) -> Tuple[str, str]:
        """Write one figure; returns the embedding HTML snippet and the file name."""
        if hasattr(figure, 'write_html'):
            path = directory / f"{stem}.html"
            figure.write_html(str(path), include_plotlyjs='cdn', full_html=True)
            return f"<iframe src='figures/{path.name}'></iframe>", path.name

        if hasattr(figure, 'savefig'):
            import matplotlib.pyplot as plt

            path = directory / f"{stem}.png"
            figure.savefig(path, dpi=120, bbox_inches='tight')
            plt.close(figure)
            return f"<img src='figures/{path.name}' alt='{html.escape(stem)}'>", path.name

        raise TypeError(f"Unsupported figure type: {type(figure).__name__}")


def _markdown_paragraphs(text: str) -> List[str]:
    lines = []
    for block in text.split("\n\n"):
        if block.strip():
            lines += [block.strip(), ""]
    return lines


def _paragraphs(text: str) -> List[str]:
    return [
        f"<p>{html.escape(block.strip())}</p>"
        for block in text.split("\n\n") if block.strip()
    ]


def write_site_index(
    entries: List[Dict[str, str]],
    output_dir: Union[str, Path],
    title: str = "XAI vignettes"
) -> Path:
    """
    Write the top-level page linking every rendered vignette.

    Args:
        entries: Dicts with 'title', 'href' and 'summary'
        output_dir: Site root
        title: Page title

    Returns:
        Path to the written index.html
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    items = "\n".join(
        f"<li><a href='{html.escape(e['href'])}'>{html.escape(e['title'])}</a>"
        f"<br><span class='meta'>{html.escape(e.get('summary', ''))}</span></li>"
        for e in entries
    )
    page = (
        "<!DOCTYPE html>\n<html><head><meta charset='utf-8'>"
        f"<title>{html.escape(title)}</title><style>{PAGE_STYLE}</style></head>\n"
        f"<body>\n<h1>{html.escape(title)}</h1>\n<ul>\n{items}\n</ul>\n</body></html>\n"
    )
    index_path = out / 'index.html'
    index_path.write_text(page, encoding='utf-8')
    return index_path
