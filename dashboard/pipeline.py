"""Typed aggregation pipeline compiled onto Django querysets.

A pipeline is an ordered list of stage descriptors::

    Pipeline([
        Match({'is_paid': True}),
        Group(by={'period': Bucket('created_at', 'day')},
              aggregates={'revenue': Sum('total_price'), 'orderCount': Count('id')}),
        Sort(('period',)),
    ]).execute(Order.objects.all())

Stages are validated as a whole before anything touches the database.
``Match`` before ``Group`` filters rows, after it filters groups.
``Skip``/``Limit`` must come last.
"""

from dataclasses import dataclass, field

from django.db.models import Aggregate, F
from django.db.models.functions import TruncDay, TruncMonth, TruncWeek, TruncYear


class PipelineError(ValueError):
    """Raised when a pipeline is malformed."""


BUCKET_FUNCTIONS = {
    'day': TruncDay,
    'week': TruncWeek,
    'month': TruncMonth,
    'year': TruncYear,
}


@dataclass(frozen=True)
class Bucket:
    """Date truncation used as a group key."""

    field: str
    unit: str = 'day'

    def expression(self):
        return BUCKET_FUNCTIONS[self.unit](self.field)


@dataclass(frozen=True)
class Match:
    lookups: dict
    kind = 'match'


@dataclass(frozen=True)
class Group:
    by: dict
    aggregates: dict = field(default_factory=dict)
    kind = 'group'

    @property
    def output_names(self):
        return set(self.by) | set(self.aggregates)


@dataclass(frozen=True)
class Sort:
    fields: tuple
    kind = 'sort'


@dataclass(frozen=True)
class Limit:
    count: int
    kind = 'limit'


@dataclass(frozen=True)
class Skip:
    count: int
    kind = 'skip'


STAGE_TYPES = (Match, Group, Sort, Limit, Skip)


def _root(name):
    return name.lstrip('-').split('__', 1)[0]


class Pipeline:
    """Builder for a validated list of stages."""

    def __init__(self, stages=None):
        self.stages = list(stages or [])

    def __len__(self):
        return len(self.stages)

    def match(self, **lookups):
        self.stages.append(Match(lookups))
        return self

    def group(self, by, **aggregates):
        self.stages.append(Group(by=by, aggregates=aggregates))
        return self

    def sort(self, *fields):
        self.stages.append(Sort(tuple(fields)))
        return self

    def limit(self, count):
        self.stages.append(Limit(count))
        return self

    def skip(self, count):
        self.stages.append(Skip(count))
        return self

    def validate(self):
        group = None
        sliced = False
        for index, stage in enumerate(self.stages):
            if not isinstance(stage, STAGE_TYPES):
                raise PipelineError(f'Stage {index} is not a pipeline stage: {stage!r}')

            if isinstance(stage, (Limit, Skip)):
                if isinstance(stage.count, bool) or not isinstance(stage.count, int):
                    raise PipelineError(f'{stage.kind} stage needs an integer count.')
                if stage.count < 0 or (isinstance(stage, Limit) and stage.count == 0):
                    raise PipelineError(f'{stage.kind} count out of range: {stage.count}')
                sliced = True
                continue

            if sliced:
                raise PipelineError(f'{stage.kind} stage cannot follow skip/limit.')

            if isinstance(stage, Match):
                if not stage.lookups:
                    raise PipelineError('match stage needs at least one lookup.')
                if group is not None:
                    unknown = {_root(name) for name in stage.lookups} - group.output_names
                    if unknown:
                        raise PipelineError(f'match after group references unknown fields: {sorted(unknown)}')
            elif isinstance(stage, Group):
                if group is not None:
                    raise PipelineError('Only one group stage is supported.')
                if not stage.by:
                    raise PipelineError('group stage needs at least one key.')
                for name, key in stage.by.items():
                    if isinstance(key, Bucket):
                        if key.unit not in BUCKET_FUNCTIONS:
                            raise PipelineError(f'Unknown bucket unit: {key.unit}')
                    elif not isinstance(key, str):
                        raise PipelineError(f'group key {name} must be a field name or Bucket.')
                for name, aggregate in stage.aggregates.items():
                    if not isinstance(aggregate, Aggregate):
                        raise PipelineError(f'{name} is not an aggregate expression.')
                clash = set(stage.by) & set(stage.aggregates)
                if clash:
                    raise PipelineError(f'group keys and aggregates overlap: {sorted(clash)}')
                group = stage
            elif isinstance(stage, Sort):
                if not stage.fields:
                    raise PipelineError('sort stage needs at least one field.')
                if group is not None:
                    unknown = {_root(name) for name in stage.fields} - group.output_names
                    if unknown:
                        raise PipelineError(f'sort after group references unknown fields: {sorted(unknown)}')
        return self

    def compile(self, queryset):
        """Validate and apply every stage to ``queryset``."""
        self.validate()
        offset, stop = 0, None
        for stage in self.stages:
            if isinstance(stage, Match):
                queryset = queryset.filter(**stage.lookups)
            elif isinstance(stage, Group):
                queryset = self._group(queryset, stage)
            elif isinstance(stage, Sort):
                queryset = queryset.order_by(*stage.fields)
            elif isinstance(stage, Skip):
                offset += stage.count
                if stop is not None:
                    stop = max(offset, stop)
            elif isinstance(stage, Limit):
                new_stop = offset + stage.count
                stop = new_stop if stop is None else min(stop, new_stop)
        if offset or stop is not None:
            queryset = queryset[offset:stop]
        return queryset

    def execute(self, queryset):
        return list(self.compile(queryset))

    @staticmethod
    def _group(queryset, stage):
        model_fields = {f.name for f in queryset.model._meta.get_fields()}
        plain, expressions = [], {}
        for name, key in stage.by.items():
            if isinstance(key, Bucket):
                expressions[name] = key.expression()
            elif key == name and name in model_fields:
                plain.append(name)
            else:
                expressions[name] = F(key)
        # Clear default ordering so it does not leak into GROUP BY.
        return queryset.order_by().values(*plain, **expressions).annotate(**stage.aggregates)
