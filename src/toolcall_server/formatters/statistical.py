"""Formatter for statistical analysis and chart tools.

The layout is chosen from the tool name: box plots, histograms, scatter
plots, t tests, ANOVA, chi-square, Kruskal-Wallis, Mann-Whitney and Wilcoxon
tests each get their own sections; anything else is listed generically.
Chart images are embedded when small enough and never dumped as raw base64.
"""

import logging
from typing import Any, Callable

from toolcall_server.formatters.base import (
    BaseFormatter,
    FormatContext,
    clean_data_for_model,
    safe_get,
    table_header,
    table_row,
    yes_no,
)
from toolcall_server.formatters.field_mapping import CATEGORY_STATISTICS

logger = logging.getLogger(__name__)

# Payload keys that are noise in the generic statistical listing
_SKIPPED_KEYS = {"success", "timestamp", "aiInstructions", "ai_instructions", "_meta"}


class StatisticalFormatter(BaseFormatter):
    """Renders statistical test results and chart summaries."""

    category = CATEGORY_STATISTICS

    def can_handle(self, tool_name: str, category: str) -> bool:
        return category == self.category

    def format(self, data: Any, tool_name: str, context: FormatContext) -> str:
        if data is None:
            return "No statistical data returned.\n"
        if self.is_error_payload(data):
            return self.render_error(data, tool_name) + f"**Tool**: {tool_name}\n"
        if not isinstance(data, dict):
            return self.render_fallback(data, tool_name)

        logger.debug(f"Formatting statistical result for {tool_name}")
        formatted = self.render_ai_guidance(data)
        formatted += self._variant(tool_name.lower())(data, tool_name, context)
        return formatted + self.format_execution_info(data)

    def _variant(self, name: str) -> Callable[[dict[str, Any], str, FormatContext], str]:
        if "boxplot" in name:
            return self.format_boxplot
        if "histogram" in name:
            return self.format_histogram
        if "scatter" in name:
            return self.format_scatter
        if "ttest" in name or "t_test" in name:
            return self.format_ttest
        if "anova" in name:
            return self.format_anova
        if "chisquare" in name or "chi_square" in name:
            return self.format_chisquare
        if "kruskal" in name:
            return self.format_kruskal
        if "mann" in name or "whitney" in name:
            return self.format_mann_whitney
        if "wilcoxon" in name:
            return self.format_wilcoxon
        return self.format_general

    # --- Charts ---

    def format_boxplot(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = "## Box plot analysis\n\n"
        title = data.get("title") or safe_get(data, "_meta.title")
        if title:
            formatted += f"### {title}\n\n"
        formatted += self.render_image(data, "Box plot")

        reasoning = safe_get(data, "_meta.reasoning") or data.get("reasoning")
        if reasoning:
            formatted += f"### Interpretation\n{reasoning}\n\n"

        groups = safe_get(data, "_meta.chart_data.data") or data.get("data")
        if isinstance(groups, list) and groups:
            formatted += "### Group summary\n\n"
            for group in groups:
                if not isinstance(group, dict) or "group" not in group:
                    continue
                formatted += f"**{group['group']}**:\n"
                if "count" in group:
                    formatted += f"- Sample size: {group['count']}\n"
                if "median" in group:
                    formatted += f"- Median: {self.format_number(group['median'], 2)}\n"
                if "mean" in group:
                    formatted += f"- Mean: {self.format_number(group['mean'], 2)}\n"
                if "q1" in group and "q3" in group:
                    formatted += (
                        f"- Interquartile range: {self.format_number(group['q1'], 2)}"
                        f" to {self.format_number(group['q3'], 2)}\n"
                    )
                if "lower_whisker" in group and "upper_whisker" in group:
                    formatted += (
                        f"- Range: {self.format_number(group['lower_whisker'], 2)}"
                        f" to {self.format_number(group['upper_whisker'], 2)}\n"
                    )
                outliers = group.get("outliers")
                if isinstance(outliers, list) and outliers:
                    values = ", ".join(self.format_number(v, 2) for v in outliers)
                    formatted += f"- Outliers: {len(outliers)} ({values})\n"
                formatted += "\n"

        comparison = safe_get(data, "_meta.comparison_analysis") or data.get("comparison_analysis")
        if isinstance(comparison, dict) and comparison:
            formatted += "### Group comparison\n\n"
            for key, label in (
                ("highest_median_group", "Highest median"),
                ("lowest_median_group", "Lowest median"),
                ("most_variable_group", "Most variable"),
                ("most_stable_group", "Most stable"),
            ):
                if comparison.get(key):
                    formatted += f"- **{label}**: {comparison[key]}\n"
            formatted += "\n"

        group_stats = safe_get(data, "_meta.group_statistics") or data.get("group_statistics")
        if isinstance(group_stats, list) and group_stats:
            formatted += "### Group statistics\n\n"
            formatted += table_header(["Group", "n", "Median", "Mean", "Std. dev.", "IQR"]) + "\n"
            for stat in group_stats:
                formatted += table_row([
                    str(stat.get("group", "unknown")),
                    str(stat.get("count", "N/A")),
                    self.format_number(stat.get("median"), 2),
                    self.format_number(stat.get("mean"), 2),
                    self.format_number(stat.get("std"), 2),
                    self.format_number(stat.get("iqr"), 2),
                ]) + "\n"
            formatted += "\n"
        return formatted

    def format_histogram(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = "## Histogram analysis\n\n"
        if data.get("title"):
            formatted += f"### {data['title']}\n\n"
        formatted += self.render_image(data, "Histogram")

        distribution = data.get("distribution_analysis")
        if isinstance(distribution, dict):
            formatted += "### Distribution\n\n"
            for key, label, decimals in (
                ("mean", "Mean", 2),
                ("median", "Median", 2),
                ("std", "Std. deviation", 2),
                ("skewness", "Skewness", 3),
                ("kurtosis", "Kurtosis", 3),
            ):
                if key in distribution:
                    formatted += f"- **{label}**: {self.format_number(distribution[key], decimals)}\n"
            formatted += "\n"
        return formatted

    def format_scatter(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = "## Scatter plot analysis\n\n"
        if data.get("title"):
            formatted += f"### {data['title']}\n\n"
        formatted += self.render_image(data, "Scatter plot")

        correlation = data.get("correlation_analysis")
        if isinstance(correlation, dict):
            formatted += "### Correlation\n\n"
            if "correlation" in correlation:
                formatted += f"- **Pearson r**: {self.format_number(correlation['correlation'], 4)}\n"
            if correlation.get("correlation_strength"):
                formatted += f"- **Strength**: {correlation['correlation_strength']}\n"
            if "p_value" in correlation:
                formatted += f"- **p-value**: {self.format_number(correlation['p_value'], 4)}\n"
            formatted += "\n"

        regression = data.get("regression_analysis")
        if isinstance(regression, dict):
            formatted += "### Regression\n\n"
            for key, label in (("slope", "Slope"), ("intercept", "Intercept"), ("r_squared", "R squared")):
                if key in regression:
                    formatted += f"- **{label}**: {self.format_number(regression[key], 4)}\n"
            if regression.get("equation"):
                formatted += f"- **Equation**: {regression['equation']}\n"
            formatted += "\n"
        return formatted

    # --- Tests ---

    def _test_report(
        self,
        title: str,
        data: dict[str, Any],
        statistic_keys: list[tuple[str, str]],
    ) -> str:
        formatted = f"## {title}\n\n"
        if data.get("test_type"):
            formatted += f"### Test: {data['test_type']}\n\n"

        stats = data.get("statistical_results")
        if isinstance(stats, dict):
            formatted += "### Results\n\n"
            for key, label in statistic_keys:
                if key in stats:
                    formatted += f"- **{label}**: {self.format_number(stats[key], 4)}\n"
            if "p_value" in stats:
                formatted += f"- **p-value**: {self.format_number(stats['p_value'], 6)}\n"
            dof = stats.get("degrees_of_freedom")
            if isinstance(dof, dict):
                formatted += (
                    f"- **Degrees of freedom**: {dof.get('between')} (between groups),"
                    f" {dof.get('within')} (within groups)\n"
                )
            elif dof is not None:
                formatted += f"- **Degrees of freedom**: {dof}\n"
            if "alpha" in stats:
                formatted += f"- **Significance level**: {stats['alpha']}\n"
            if "significant" in stats:
                formatted += f"- **Significant**: {yes_no(stats['significant'])}\n"
            formatted += "\n"
        return formatted

    def _conclusion(self, data: dict[str, Any]) -> str:
        formatted = ""
        if data.get("descriptive_stats"):
            formatted += self.format_descriptive_stats(data["descriptive_stats"])
        if data.get("conclusion"):
            formatted += f"### Conclusion\n\n{data['conclusion']}\n\n"
        return formatted

    def format_ttest(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = self._test_report("t test", data, [("t_statistic", "t statistic")])
        return formatted + self._conclusion(data)

    def format_anova(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = self._test_report("ANOVA", data, [("f_statistic", "F statistic")])
        comparisons = data.get("group_comparisons")
        if isinstance(comparisons, list) and comparisons:
            formatted += "### Group comparisons\n\n"
            for comp in comparisons:
                formatted += (
                    f"- **{comp.get('group1')} vs {comp.get('group2')}**: "
                    f"difference = {self.format_number(comp.get('mean_difference'), 3)}, "
                    f"p = {self.format_number(comp.get('p_value'), 4)}\n"
                )
            formatted += "\n"
        return formatted + self._conclusion(data)

    def format_chisquare(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = self._test_report(
            "Chi-square test", data, [("chi2_statistic", "Chi-square"), ("chi_square", "Chi-square")]
        )
        rows, cols = data.get("row_labels") or [], data.get("col_labels") or []
        if data.get("contingency_table"):
            formatted += "### Observed frequencies\n\n"
            formatted += self.format_contingency_table(data["contingency_table"], rows, cols)
        if data.get("expected_frequencies"):
            formatted += "### Expected frequencies\n\n"
            formatted += self.format_contingency_table(data["expected_frequencies"], rows, cols)
        if data.get("conclusion"):
            formatted += f"### Conclusion\n\n{data['conclusion']}\n\n"
        return formatted

    def format_kruskal(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = self._test_report("Kruskal-Wallis test", data, [("h_statistic", "H statistic")])
        return formatted + self._conclusion(data)

    def format_mann_whitney(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = self._test_report("Mann-Whitney U test", data, [("u_statistic", "U statistic")])
        return formatted + self._conclusion(data)

    def format_wilcoxon(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        formatted = self._test_report("Wilcoxon signed-rank test", data, [("w_statistic", "W statistic")])
        return formatted + self._conclusion(data)

    def format_general(self, data: dict[str, Any], tool_name: str, context: FormatContext) -> str:
        mappings, category = context.mappings, context.category
        formatted = "## Statistical analysis\n\n"
        formatted += f"### Tool: {tool_name}\n\n"
        formatted += self.render_image(data)
        for key, value in clean_data_for_model(data).items():
            if key in _SKIPPED_KEYS or value is None:
                continue
            label = mappings.label(key, category)
            if isinstance(value, bool):
                rendered = yes_no(value)
            elif isinstance(value, list):
                rendered = mappings.format_value(value, key, category) if len(value) <= 10 else f"list of {len(value)} items"
            elif isinstance(value, dict):
                rendered = ", ".join(f"{mappings.label(k, category)}: {v}" for k, v in value.items())
            else:
                rendered = mappings.format_value(value, key, category)
            formatted += f"- **{label}**: {rendered}\n"
        return formatted + "\n"

    # --- Shared sections ---

    def format_descriptive_stats(self, stats: Any) -> str:
        formatted = "### Descriptive statistics\n\n"
        if isinstance(stats, list):
            formatted += table_header(["Group", "n", "Mean", "Std. dev.", "Min", "Max"]) + "\n"
            for stat in stats:
                if not isinstance(stat, dict):
                    continue
                formatted += table_row([
                    str(stat.get("group", "unknown")),
                    str(stat.get("count", "N/A")),
                    self.format_number(stat.get("mean"), 3),
                    self.format_number(stat.get("std"), 3),
                    self.format_number(stat.get("min"), 3),
                    self.format_number(stat.get("max"), 3),
                ]) + "\n"
        elif isinstance(stats, dict):
            if "mean" in stats:
                formatted += f"- **Mean**: {self.format_number(stats['mean'], 3)}\n"
            if "std" in stats:
                formatted += f"- **Std. deviation**: {self.format_number(stats['std'], 3)}\n"
            if "count" in stats:
                formatted += f"- **Sample size**: {stats['count']}\n"
        return formatted + "\n"

    def format_contingency_table(
        self,
        table: Any,
        row_labels: list[str],
        col_labels: list[str],
    ) -> str:
        if not isinstance(table, list) or not table or not isinstance(table[0], list):
            return "No contingency table.\n\n"
        width = len(table[0])
        headers = [""] + (list(col_labels) if col_labels else [f"Column {i + 1}" for i in range(width)])
        formatted = table_header(headers) + "\n"
        for i, row in enumerate(table):
            label = row_labels[i] if i < len(row_labels) else f"Row {i + 1}"
            formatted += table_row([str(label)] + [self.format_number(cell, 2) for cell in row]) + "\n"
        return formatted + "\n"

    def format_execution_info(self, data: dict[str, Any]) -> str:
        entries = []
        if data.get("service_name"):
            entries.append(f"- **Service**: {data['service_name']}")
        if data.get("tool_name"):
            entries.append(f"- **Tool**: {data['tool_name']}")
        if data.get("module"):
            entries.append(f"- **Module**: {data['module']}")
        if data.get("timestamp"):
            entries.append(f"- **Executed at**: {self.format_timestamp(data['timestamp'])}")
        if not entries:
            return ""
        return "### Execution\n" + "\n".join(entries) + "\n\n"
