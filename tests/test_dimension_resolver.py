"""Unit tests for services.dimension_resolver."""

from unittest.mock import call

from conftest import make_spec, make_task

from config.templates import compile_metric
from services.dimension_resolver import DimensionResolver
from services.models import ScrapeStats
from wrappers.cloudwatch import ProviderError


def _error() -> ProviderError:
    return ProviderError("ListMetrics", RuntimeError("boom"))


class TestDirectPath:
    def test_single_values_need_no_discovery_call(self, cloudwatch):
        spec = make_spec(
            dimensions=("InstanceId", "Env"),
            dimensions_select={"InstanceId": ("$_target",), "Env": ("prod",)},
        )
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(make_task(spec), compile_metric(spec), "i-42"))

        assert len(sets) == 1
        assert sets[0].pairs == (("InstanceId", "i-42"), ("Env", "prod"))
        assert sets[0].discovered is False
        cloudwatch.list_metrics_page.assert_not_called()

    def test_pairs_follow_declared_dimension_order(self, cloudwatch):
        spec = make_spec(
            dimensions=("A", "B"),
            dimensions_select={"B": ("b",), "A": ("a",)},
        )
        resolver = DimensionResolver(cloudwatch, ScrapeStats())
        direct = resolver.direct_dimension_set(compile_metric(spec), "t")
        assert direct.values == ("a", "b")

    def test_multi_valued_selection_is_folded_into_one_set(self, cloudwatch):
        spec = make_spec(dimensions_select={"InstanceId": ("i-1", "i-2")})
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(make_task(spec), compile_metric(spec), "t"))

        assert len(sets) == 1
        assert sets[0].pairs == (("InstanceId", "i-1"), ("InstanceId", "i-2"))

    def test_dimensionless_metric_yields_empty_set(self, cloudwatch):
        spec = make_spec(namespace="AWS/Billing", name="EstimatedCharges", dimensions=())
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(make_task(spec), compile_metric(spec), "t"))

        assert [s.pairs for s in sets] == [()]
        cloudwatch.list_metrics_page.assert_not_called()

    def test_no_selection_means_no_direct_set(self, cloudwatch, compiled):
        resolver = DimensionResolver(cloudwatch, ScrapeStats())
        assert resolver.direct_dimension_set(compiled, "t") is None


class TestDiscoveryPath:
    def test_match_all_returns_every_distinct_combination(self, cloudwatch, task, compiled):
        cloudwatch.list_metrics_page.return_value = (
            [{"InstanceId": "i-1"}, {"InstanceId": "i-2"}, {"InstanceId": "i-1"}],
            None,
        )
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(task, compiled, "t"))

        assert [s.values for s in sets] == [("i-1",), ("i-2",)]
        assert all(s.discovered for s in sets)

    def test_pagination_accumulates_all_pages_before_matching(self, cloudwatch, task, compiled):
        cloudwatch.list_metrics_page.side_effect = [
            ([{"InstanceId": "i-1"}], "T2"),
            ([{"InstanceId": "i-2"}], "T3"),
            ([{"InstanceId": "i-3"}], None),
        ]
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = resolver.discover(task, compiled, "t")
        first = next(sets)

        # All three pages were requested before the first set came out
        assert cloudwatch.list_metrics_page.call_count == 3
        assert cloudwatch.list_metrics_page.call_args_list == [
            call("AWS/EC2", "CPUUtilization"),
            call("AWS/EC2", "CPUUtilization", "T2"),
            call("AWS/EC2", "CPUUtilization", "T3"),
        ]
        assert [first.values] + [s.values for s in sets] == [("i-1",), ("i-2",), ("i-3",)]

    def test_duplicates_across_pages_produce_one_set(self, cloudwatch):
        spec = make_spec(dimensions=("LoadBalancer", "AZ"))
        cloudwatch.list_metrics_page.side_effect = [
            ([{"LoadBalancer": "lb", "AZ": "a"}], "T2"),
            ([{"AZ": "a", "LoadBalancer": "lb"}], None),
        ]
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(make_task(spec), compile_metric(spec), "t"))

        assert len(sets) == 1
        assert sets[0].pairs == (("LoadBalancer", "lb"), ("AZ", "a"))

    def test_every_declared_dimension_must_match(self, cloudwatch):
        spec = make_spec(
            dimensions=("LoadBalancer", "AZ"),
            dimensions_select_regex={"LoadBalancer": "^prod-"},
        )
        cloudwatch.list_metrics_page.return_value = (
            [
                {"LoadBalancer": "prod-web", "AZ": "eu-west-1a"},
                {"LoadBalancer": "dev-web", "AZ": "eu-west-1a"},
                {"LoadBalancer": "prod-api"},
            ],
            None,
        )
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(make_task(spec), compile_metric(spec), "t"))

        assert [s.values for s in sets] == [("prod-web", "eu-west-1a")]

    def test_undeclared_dimensions_are_rejected(self, cloudwatch, task, compiled):
        cloudwatch.list_metrics_page.return_value = (
            [{"InstanceId": "i-1", "AutoScalingGroupName": "asg"}, {"InstanceId": "i-2"}],
            None,
        )
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(task, compiled, "t"))

        assert [s.values for s in sets] == [("i-2",)]

    def test_literal_selection_filters_discovery(self, cloudwatch):
        spec = make_spec(
            dimensions=("InstanceId", "Env"),
            dimensions_select={"Env": ("prod",)},
        )
        cloudwatch.list_metrics_page.return_value = (
            [{"InstanceId": "i-1", "Env": "prod"}, {"InstanceId": "i-2", "Env": "dev"}],
            None,
        )
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        sets = list(resolver.resolve(make_task(spec), compile_metric(spec), "t"))

        # Direct set (Env only) first, then the discovered match
        assert sets[0].discovered is False
        assert sets[0].pairs == (("Env", "prod"),)
        assert [s.values for s in sets[1:]] == [("i-1", "prod")]

    def test_target_token_is_substituted_in_discovery_filter(self, cloudwatch):
        spec = make_spec(
            dimensions=("InstanceId", "Volume"),
            dimensions_select={"InstanceId": ("$_target",)},
        )
        cloudwatch.list_metrics_page.return_value = (
            [{"InstanceId": "i-1", "Volume": "v-1"}, {"InstanceId": "i-2", "Volume": "v-2"}],
            None,
        )
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        discovered = list(resolver.discover(make_task(spec), compile_metric(spec), "i-2"))

        assert [s.values for s in discovered] == [("i-2", "v-2")]

    def test_dedup_is_fresh_for_every_resolve(self, cloudwatch, task, compiled):
        cloudwatch.list_metrics_page.return_value = ([{"InstanceId": "i-1"}], None)
        resolver = DimensionResolver(cloudwatch, ScrapeStats())

        assert len(list(resolver.resolve(task, compiled, "t"))) == 1
        assert len(list(resolver.resolve(task, compiled, "t"))) == 1


class TestDiscoveryErrors:
    def test_first_page_failure_aborts_discovery(self, cloudwatch, task, compiled):
        stats = ScrapeStats()
        cloudwatch.list_metrics_page.side_effect = _error()
        resolver = DimensionResolver(cloudwatch, stats)

        assert list(resolver.resolve(task, compiled, "t")) == []
        assert stats.erroneous_requests == 1
        assert cloudwatch.list_metrics_page.call_count == 1

    def test_failed_page_is_dropped_and_token_retried(self, cloudwatch, task, compiled):
        stats = ScrapeStats()
        cloudwatch.list_metrics_page.side_effect = [
            ([{"InstanceId": "i-1"}], "T2"),
            _error(),
            ([{"InstanceId": "i-2"}], None),
        ]
        resolver = DimensionResolver(cloudwatch, stats)

        sets = list(resolver.resolve(task, compiled, "t"))

        assert [s.values for s in sets] == [("i-1",), ("i-2",)]
        assert stats.erroneous_requests == 1
        assert cloudwatch.list_metrics_page.call_args_list[2] == call(
            "AWS/EC2", "CPUUtilization", "T2"
        )

    def test_pagination_gives_up_after_repeated_failures(self, cloudwatch, task, compiled):
        stats = ScrapeStats()
        cloudwatch.list_metrics_page.side_effect = [
            ([{"InstanceId": "i-1"}], "T2"),
            _error(),
            _error(),
        ]
        resolver = DimensionResolver(cloudwatch, stats, page_attempts=2)

        sets = list(resolver.resolve(task, compiled, "t"))

        assert [s.values for s in sets] == [("i-1",)]
        assert stats.erroneous_requests == 2
        assert cloudwatch.list_metrics_page.call_count == 3
