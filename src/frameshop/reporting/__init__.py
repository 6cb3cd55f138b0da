from frameshop.reporting.workload import WorkloadMetrics, workload_metrics

__all__ = ["WorkloadMetrics", "workload_metrics"]
