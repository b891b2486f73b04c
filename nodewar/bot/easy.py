#!/usr/bin/env python3
import argparse
import logging
from typing import List, Optional

from nodewar.botlib import GameClient, GameView, Transfer
from nodewar.config import ServerConfig


class EasyBot(GameClient):
    def choose_start_node(self, view: GameView) -> Optional[int]:
        """
        - Start on the neutral node with the most neighbours
        """
        if not view.neutral_nodes:
            return None
        return max(view.neutral_nodes, key=lambda n: (len(n.adjacency), -n.id)).id

    def play(self, view: GameView) -> List[Transfer]:
        """
        - Capture enemy neighbours we can beat outright
        - Otherwise claim neutral neighbours with the minimum transfer
        - Push interior troops towards the frontline
        """
        transfers = []

        for node in view.frontline_nodes():
            enemies = [e for e in view.enemy_neighbors(node.id)
                       if view.can_capture(node.id, e.id, node.troops)]
            if enemies:
                weakest = min(enemies, key=lambda e: e.troops)
                transfers.append(Transfer(node.id, weakest.id, node.troops))
                continue

            neutrals = view.neutral_neighbors(node.id)
            if neutrals and node.troops >= 2 * view.min_transfer:
                transfers.append(Transfer(node.id, neutrals[0].id, view.min_transfer))

        for node in view.my_nodes:
            distance = view.distance_to_frontline(node.id)
            if distance <= 0 or node.troops < view.min_transfer:
                continue
            closer = [m for m in view.my_neighbors(node.id)
                      if view.distance_to_frontline(m.id) == distance - 1]
            if closer:
                transfers.append(Transfer(node.id, closer[0].id, node.troops))

        return transfers


def main() -> None:
    parser = argparse.ArgumentParser(description="Node War easy bot")
    parser.add_argument("--name", default="EasyBot")
    parser.add_argument("--color", default=None)
    parser.add_argument("--url", default=f"ws://{ServerConfig.HOST}:{ServerConfig.PORT}")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=ServerConfig.LOG_FORMAT)
    EasyBot(args.name, args.color, args.url).run()


if __name__ == "__main__":
    main()
