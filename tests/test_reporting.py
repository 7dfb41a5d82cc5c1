"""
Tests for xaiv.reporting - report rendering and the narrative vignettes.
"""

import pytest
import pandas as pd
import plotly.graph_objects as go
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from xaiv.reporting.report import VignetteReport, slugify, write_site_index
from xaiv.reporting.vignette import (
    QUERY_TITLES,
    AutoMLVignette,
    BenchmarkVignette,
    Vignette,
    build_site,
    default_vignettes,
)


class TestVignetteReport:
    """Test report assembly and rendering."""

    def test_slugify(self):
        assert slugify("Break-down for one observation") == 'break-down-for-one-observation'
        assert slugify("AutoML: dragons") == 'automl-dragons'
        assert slugify("!!!") == 'item'

    def test_render_writes_assets(self, tmp_path):
        report = VignetteReport("Demo report", intro="First paragraph.\n\nSecond paragraph.")
        table = pd.DataFrame({'learner': ['glm', 'knn'], 'rmse': [1.23456, 2.5]})

        fig, ax = plt.subplots()
        ax.plot([1, 2, 3])

        report.add_section(
            "Results",
            text="Some <b>bold</b> text.",
            tables={"Scores": table},
            figures={"Bars": go.Figure(go.Bar(x=['a', 'b'], y=[1, 2])), "Line": fig},
            downloads={"Raw": table},
        )
        index = report.render(tmp_path / 'out')

        assert index == tmp_path / 'out' / 'index.html'
        page = index.read_text(encoding='utf-8')
        assert '<h1>Demo report</h1>' in page
        assert page.count('<p>') == 3
        assert '&lt;b&gt;bold&lt;/b&gt;' in page
        assert '1.235' in page
        assert "<iframe src='figures/01_results_bars.html'></iframe>" in page
        assert "<img src='figures/01_results_line.png'" in page

        readme = (tmp_path / 'out' / 'README.md').read_text(encoding='utf-8')
        assert readme.startswith('# Demo report')
        assert '## Results' in readme
        assert '- Figure: [Line](figures/01_results_line.png)' in readme
        assert '- Table: [Scores](tables/01_results_scores.csv)' in readme

        figures = sorted(p.name for p in (tmp_path / 'out' / 'figures').iterdir())
        assert figures == ['01_results_bars.html', '01_results_line.png']

        tables = sorted(p.name for p in (tmp_path / 'out' / 'tables').iterdir())
        assert tables == ['01_results_raw.csv', '01_results_scores.csv']
        pd.testing.assert_frame_equal(
            pd.read_csv(tmp_path / 'out' / 'tables' / '01_results_scores.csv'), table
        )

    def test_long_tables_are_truncated(self, tmp_path):
        report = VignetteReport("Long")
        report.add_section("Rows", tables={"All": pd.DataFrame({'x': range(40)})})

        page = report.render(tmp_path, max_table_rows=10).read_text(encoding='utf-8')
        assert 'First 10 of 40 rows' in page
        assert len(pd.read_csv(tmp_path / 'tables' / '01_rows_all.csv')) == 40

    def test_unsupported_figure_raises(self, tmp_path):
        report = VignetteReport("Bad")
        report.add_section("Oops", figures={"thing": object()})

        with pytest.raises(TypeError, match="Unsupported figure"):
            report.render(tmp_path)

    def test_section_lookup(self):
        report = VignetteReport("Lookup")
        report.add_section("Data", text="rows")

        assert report.section("Data").text == "rows"
        with pytest.raises(KeyError):
            report.section("Missing")

    def test_site_index(self, tmp_path):
        index = write_site_index(
            [{'title': 'A & B', 'href': 'a-b/index.html', 'summary': 'first'},
             {'title': 'C', 'href': 'c/index.html'}],
            tmp_path / 'site',
        )
        page = index.read_text(encoding='utf-8')

        assert "href='a-b/index.html'" in page
        assert 'A &amp; B' in page
        assert page.count('<li>') == 2


class TestAutoMLVignette:
    """End-to-end AutoML vignette on a synthetic dragons table."""

    @pytest.fixture
    def vignette(self, dragons_dataset, fast_config):
        vignette = AutoMLVignette(dragons_dataset, config=fast_config, include_algos=['glm', 'knn'])
        vignette.run()
        return vignette

    def test_sections(self, vignette):
        titles = [s.title for s in vignette.report.sections]
        assert titles == ['Data', 'Model selection'] + [
            QUERY_TITLES[k] for k in
            ('performance', 'importance', 'profile_partial', 'profile_accumulated', 'break_down')
        ]

    def test_leader_is_explained(self, vignette):
        result = vignette.automl_result
        assert len(result.leaderboard) <= 3
        assert vignette.explanations.label == f"AutoML {result.leader.algorithm}"

        leaderboard = vignette.report.section('Model selection').tables['Leaderboard']
        assert leaderboard.iloc[0]['model_id'] == result.leader_id

    def test_explanations_use_validation_rows(self, vignette, dragons_dataset):
        performance = vignette.explanations.tables()['performance']
        assert len(performance) == 1
        assert len(vignette.explanations.importance.result) > 0
        assert len(vignette.explanations.observation) == 1
        assert list(vignette.explanations.observation.columns) == dragons_dataset.features

    def test_render(self, vignette, tmp_path):
        index = vignette.render(tmp_path / 'automl')
        page = index.read_text(encoding='utf-8')

        assert vignette.report.title in page
        assert 'Accumulated local effects' in page
        assert (tmp_path / 'automl' / 'figures').is_dir()
        assert vignette.summary().startswith('AutoML leader')

    def test_slug(self, dragons_dataset):
        assert AutoMLVignette(dragons_dataset).slug == 'automl-dragons'
        assert AutoMLVignette().slug == 'automl-dragons'


class TestBenchmarkVignette:
    """End-to-end benchmark vignette on a synthetic apartments table."""

    @pytest.fixture
    def vignette(self, apartments_dataset, fast_config):
        vignette = BenchmarkVignette(apartments_dataset, config=fast_config, learners=['glm', 'knn'])
        vignette.run()
        return vignette

    def test_requires_learners(self):
        with pytest.raises(ValueError):
            BenchmarkVignette(learners=[])

    def test_sections(self, vignette):
        titles = [s.title for s in vignette.report.sections]
        assert titles[:2] == ['Data', 'Benchmark']
        assert QUERY_TITLES['importance'] in titles
        assert QUERY_TITLES['break_down'] in titles

    def test_every_learner_explained(self, vignette):
        assert [r.label for r in vignette.explanations] == ['glm', 'knn']

        perf = vignette.benchmark_result.performances
        assert len(perf) == 6

        performance = vignette.report.section(QUERY_TITLES['performance']).tables
        combined = next(iter(performance.values()))
        assert len(combined) == 2

    def test_repeated_cv(self, apartments_dataset, fast_config):
        config = fast_config.with_overrides(resampling='repeated_cv', repeats=2)
        vignette = BenchmarkVignette(apartments_dataset, config=config, learners=['glm'])
        vignette.run()

        perf = vignette.benchmark_result.performances
        assert len(perf) == 6
        assert 'repeated_cv resampling (6 iterations)' in vignette.report.section('Benchmark').text

    def test_summary(self, vignette):
        best = vignette.benchmark_result.best_learner('apartments')
        assert vignette.summary() == f"Best learner by RMSE: {best}"


class TestSite:
    """Test the documentation site build."""

    def test_vignette_is_abstract(self):
        with pytest.raises(TypeError):
            Vignette()

    def test_default_vignettes(self, fast_config):
        vignettes = default_vignettes(fast_config)
        assert [type(v) for v in vignettes] == [AutoMLVignette, BenchmarkVignette]
        assert [v.slug for v in vignettes] == ['automl-dragons', 'benchmark-apartments']

    def test_build_site(self, dragons_dataset, apartments_dataset, fast_config, tmp_path):
        vignettes = [
            AutoMLVignette(dragons_dataset, config=fast_config, include_algos=['glm']),
            BenchmarkVignette(apartments_dataset, config=fast_config, learners=['glm']),
        ]
        index = build_site(vignettes, output_dir=tmp_path / 'docs')

        page = index.read_text(encoding='utf-8')
        assert "href='automl-dragons/index.html'" in page
        assert "href='benchmark-apartments/index.html'" in page
        assert (tmp_path / 'docs' / 'automl-dragons' / 'index.html').exists()
        assert (tmp_path / 'docs' / 'benchmark-apartments' / 'index.html').exists()
