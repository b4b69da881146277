"""
Reference graph over the stored network.

Builds a NetworkX view of every weak edge between aggregates so dangling ids
can be spotted in one place. Nodes are ``(kind, id)`` pairs; edges carry a
``kind`` naming the reference they came from.
"""
import logging
from typing import Iterable, List, Optional, Tuple

import networkx as nx

from railcore.repositories import StationStore, TrackStore, TrainStore
from railcore.schemas import Station, Track, Train

logger = logging.getLogger(__name__)

STATION = "station"
TRACK = "track"
TRAIN = "train"
JUNCTION = "junction"
ROUTE = "route"

# junctions and routes have no store here, so they are never resolved
UNTRACKED_KINDS = {JUNCTION, ROUTE}


def _add_reference(graph: nx.DiGraph, source: Tuple[str, str],
                   target: Tuple[str, str], kind: str, **attrs) -> None:
    if target not in graph:
        graph.add_node(target, kind=target[0],
                       resolved=None if target[0] in UNTRACKED_KINDS else False)
    graph.add_edge(source, target, kind=kind, **attrs)


def build_reference_graph(stations: Iterable[Station], tracks: Iterable[Track],
                          trains: Iterable[Train] = ()) -> nx.DiGraph:
    """
    Graph of weak references between the given aggregates.

    Stations should carry platforms, tracks their signals and trains their
    schedule to contribute those edges; collections left unloaded are skipped.
    """
    stations, tracks, trains = list(stations), list(tracks), list(trains)
    graph = nx.DiGraph()

    for station in stations:
        graph.add_node((STATION, station.id), kind=STATION, resolved=True, name=station.name)
    for track in tracks:
        graph.add_node((TRACK, track.id), kind=TRACK, resolved=True,
                       length=track.length, max_speed=track.max_speed)
    for train in trains:
        graph.add_node((TRAIN, train.id), kind=TRAIN, resolved=True,
                       train_type=train.train_type.value)

    for station in stations:
        node = (STATION, station.id)
        for track_id in station.connected_track_ids:
            _add_reference(graph, node, (TRACK, track_id), "connected_track")
        for platform in station.platforms or []:
            _add_reference(graph, node, (TRACK, platform.connected_track_id), "platform_track",
                           platform_id=platform.id)

    for track in tracks:
        node = (TRACK, track.id)
        if track.start_junction_id:
            _add_reference(graph, node, (JUNCTION, track.start_junction_id), "start_junction")
        if track.end_junction_id:
            _add_reference(graph, node, (JUNCTION, track.end_junction_id), "end_junction")
        for signal in track.signals or []:
            for protected in signal.protected_track_ids:
                _add_reference(graph, node, (TRACK, protected), "protects", signal_id=signal.id)

    for train in trains:
        node = (TRAIN, train.id)
        if train.assigned_route_id:
            _add_reference(graph, node, (ROUTE, train.assigned_route_id), "assigned_route")
        if train.schedule is not None:
            for stop in train.schedule.stop_times or []:
                _add_reference(graph, node, (STATION, stop.station_id), "stops_at",
                               sequence_order=stop.sequence_order)

    logger.info(
        f"Reference graph built: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges, "
        f"{len(dangling_references(graph))} dangling"
    )
    return graph


def load_reference_graph(stations: StationStore, tracks: TrackStore,
                         trains: Optional[TrainStore] = None) -> nx.DiGraph:
    """Load every aggregate with the relations that carry references and build the graph."""
    return build_reference_graph(
        stations.list_all_with_relations({"platforms"}),
        tracks.list_all_with_relations({"signals"}),
        trains.list_all_with_relations({"schedule"}) if trains is not None else (),
    )


def dangling_references(graph: nx.DiGraph) -> List[Tuple[Tuple[str, str], Tuple[str, str], str]]:
    """``(source, target, kind)`` for every edge whose target is a known kind that does not exist."""
    return [
        (source, target, data["kind"])
        for source, target, data in graph.edges(data=True)
        if graph.nodes[target].get("resolved") is False
    ]
